# Copyright 2014 Matt Chaput. All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#    1. Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#
#    2. Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY MATT CHAPUT ``AS IS'' AND ANY EXPRESS OR
# IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED WARRANTIES OF
# MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO
# EVENT SHALL MATT CHAPUT OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT
# LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA,
# OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
# NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#
# The views and conclusions contained in the software and documentation are
# those of the authors and should not be interpreted as representing official
# policies, either expressed or implied, of Matt Chaput.

import sys
from collections import deque
from io import StringIO

from loguru import logger

# Symbol value of an epsilon edge. Other negative symbols are reserved.
EPSILON = -1


# Exceptions


class FsmError(Exception):
    """Base class for errors raised by fsmtools."""


class ForeignStateError(FsmError, ValueError):
    """
    Raised when a state is used with an automaton that does not own it.

    Setting such a state as the start state, or wiring an edge to or from it,
    is a caller bug. The operation is aborted before anything is modified.

    Attributes:
        state (State): The offending state.
        nfa (NFA): The automaton the state was used with.
    """

    def __init__(self, state, nfa):
        self.state = state
        self.nfa = nfa
        super().__init__(f"{state!r} does not belong to {nfa!r}")


# State sets


class Closure:
    """
    A set of states keyed by their identities.

    Closures are used both as the destination sets of a state's transitions
    and as the result of an epsilon closure computation. Members are always
    enumerated in identity order, so two closures holding the same states
    behave identically regardless of insertion order.

    Example:
        >>> nfa = NFA()
        >>> a, b = nfa.new_state(), nfa.new_state()
        >>> c = Closure([b, a])
        >>> c.key()
        '[0 1]'
        >>> c.has(a)
        True
    """

    def __init__(self, states=()):
        self._members = {}
        for state in states:
            self.include(state)

    def __len__(self):
        return len(self._members)

    def __iter__(self):
        return iter(self.states())

    def __contains__(self, state):
        return self.has(state)

    def __eq__(self, other):
        if not isinstance(other, Closure):
            return NotImplemented
        return self._members.keys() == other._members.keys()

    __hash__ = None

    def __repr__(self):
        return f"<Closure {self.key()}>"

    def has(self, state):
        """
        Returns True if the given state is a member of this closure.
        """
        return self._members.get(state.id) is state

    def include(self, state):
        """
        Adds a state to the closure. Adding a member twice has no effect.
        """
        self._members[state.id] = state

    def exclude(self, state):
        """
        Removes a state from the closure, if it is a member.
        """
        if self.has(state):
            del self._members[state.id]

    def update(self, states):
        for state in states:
            self.include(state)

    def ids(self):
        """
        Returns the sorted list of member identities.
        """
        return sorted(self._members)

    def states(self):
        """
        Returns a list of the member states in identity order.
        """
        members = self._members
        return [members[i] for i in self.ids()]

    def key(self):
        """
        Returns the canonical key of this closure.

        The key is the sorted list of member identities rendered as a string,
        for example ``"[0 2 3]"``. Closures with the same members always have
        the same key, which is what the powerset construction memoizes on.

        Returns:
            str: The canonical key.
        """
        return "[" + " ".join(str(i) for i in self.ids()) + "]"

    def is_accepting(self):
        """
        Returns True if any member of the closure is an accepting state.
        """
        return any(state.accepting for state in self._members.values())


class Transitions(dict):
    """
    Maps symbols to the :class:`Closure` of destination states.

    This is the raw edge table of a :class:`State`. It is a ``dict``, so the
    usual mapping operations work on it; :meth:`set` and :meth:`delete` are
    spelled out for callers that manipulate tables directly. Note that the
    raw operations do not check state ownership, use :meth:`State.new_edge`
    for that.
    """

    def edge(self, symbol, create=False):
        """
        Returns the closure associated with a symbol.

        Args:
            symbol (int): The edge symbol.
            create (bool, optional): Whether to store a new empty closure in
                the table when the symbol has none. Defaults to False, in
                which case an unattached empty closure is returned.

        Returns:
            Closure: The destination states for the symbol.
        """
        closure = dict.get(self, symbol)
        if closure is None:
            closure = Closure()
            if create:
                self[symbol] = closure
        return closure

    def new_edge(self, symbol, state):
        closure = self.edge(symbol, create=True)
        closure.include(state)
        return closure

    def set(self, symbol, closure):
        """Sets the closure associated with a symbol."""
        self[symbol] = closure

    def delete(self, symbol):
        """Removes the closure associated with a symbol, if there is one."""
        self.pop(symbol, None)

    def symbols(self):
        """Returns a sorted list of the symbols appearing in the table."""
        return sorted(self)


# States


class State:
    """
    One state of an :class:`NFA`.

    States are created with :meth:`NFA.new_state` and belong to that
    automaton for their whole life. The identity (``id``) is the state's
    zero based index within its automaton.

    Attributes:
        nfa (NFA): The owning automaton.
        id (int): The state's identity.
        accepting (bool): Whether this is an accepting state.
        transitions (Transitions): The outgoing edges of the state.
    """

    def __init__(self, nfa, id, accepting=False):
        self.nfa = nfa
        self.id = id
        self.accepting = accepting
        self.transitions = Transitions()

    def __repr__(self):
        if self.accepting:
            return f"<State {self.id} accepting>"
        return f"<State {self.id}>"

    def __str__(self):
        return _render_state(self)

    def closure(self):
        """
        Returns the epsilon closure of this state.

        The result holds this state and every state reachable from it through
        one or more epsilon edges. The closure is recomputed on every call.

        Returns:
            Closure: The epsilon closure.

        Example:
            >>> nfa = NFA()
            >>> a, b, c = nfa.new_state(), nfa.new_state(), nfa.new_state()
            >>> a.new_edge(EPSILON, b)
            >>> b.new_edge(EPSILON, a)
            >>> b.new_edge(0, c)
            >>> a.closure().key()
            '[0 1]'
        """
        closure = Closure()
        stack = [self]
        while stack:
            state = stack.pop()
            if state in closure:
                continue
            closure.include(state)
            for dest in state.transitions.edge(EPSILON):
                if dest not in closure:
                    stack.append(dest)
        return closure

    def edge(self, symbol):
        """
        Returns the closure of destinations for a symbol. The closure is
        empty if the state has no edge labeled with the symbol.
        """
        return self.transitions.edge(symbol)

    def symbols(self):
        """Returns a sorted list of the symbols of the outgoing edges."""
        return self.transitions.symbols()

    def new_edge(self, symbol, dest):
        """
        Connects this state to another state of the same automaton.

        By convention, ``symbol == EPSILON`` adds an epsilon edge. Adding an
        edge that already exists has no effect.

        Args:
            symbol (int): The edge symbol.
            dest (State): The destination state.

        Raises:
            ForeignStateError: If ``dest`` belongs to a different automaton.
        """
        if dest.nfa is not self.nfa:
            raise ForeignStateError(dest, self.nfa)
        self.transitions.new_edge(symbol, dest)


# Automaton


class NFA:
    """
    A nondeterministic finite automaton over integer symbols.

    The automaton owns its states. States are created with
    :meth:`new_state`, receive dense identities in creation order and are
    never removed. The first state created becomes the start state unless
    another one is set explicitly.

    The transforms :meth:`reverse`, :meth:`powerset` and :meth:`minimal_dfa`
    never modify the automaton; each returns a new, independent one. A DFA
    is simply an NFA without epsilon edges and with at most one destination
    per symbol.

    Example:
        >>> nfa = NFA()
        >>> s0, s1 = nfa.new_state(), nfa.new_state(accepting=True)
        >>> s0.new_edge(0, s1)
        >>> print(nfa, end="")
        ->[0]
        	0 -> [1]
        [[1]]
    """

    def __init__(self):
        self._states = []
        self._start = None

    def __len__(self):
        return len(self._states)

    def __iter__(self):
        return iter(self._states)

    def __repr__(self):
        return f"<NFA with {len(self._states)} states>"

    def __str__(self):
        return render(self)

    @property
    def start(self):
        """The start state, or None if the automaton has no states."""
        return self._start

    @start.setter
    def start(self, state):
        self.set_start(state)

    def set_start(self, state):
        """
        Sets the start state.

        Args:
            state (State): The new start state.

        Raises:
            ForeignStateError: If the state belongs to another automaton.
        """
        self._check(state)
        self._start = state

    def _check(self, state):
        if state.nfa is not self:
            raise ForeignStateError(state, self)

    def new_state(self, accepting=False):
        """
        Adds a new state to the automaton. If the automaton was empty, the
        new state becomes the start state.

        Args:
            accepting (bool, optional): Whether the new state is accepting.
                Defaults to False.

        Returns:
            State: The new state.
        """
        state = State(self, len(self._states), accepting)
        self._states.append(state)
        if len(self._states) == 1:
            self._start = state
        return state

    def new_edge(self, src, symbol, dest):
        """
        Adds an edge labeled ``symbol`` from ``src`` to ``dest``.

        Raises:
            ForeignStateError: If either state belongs to another automaton.
        """
        self._check(src)
        src.new_edge(symbol, dest)

    def state(self, ident):
        """
        Returns the state with the given identity, or None if there is no
        such state.
        """
        if 0 <= ident < len(self._states):
            return self._states[ident]
        return None

    def states(self):
        """Returns a list of all states in identity order."""
        return list(self._states)

    def accepting_states(self):
        """Returns a list of the accepting states in identity order."""
        return [state for state in self._states if state.accepting]

    def triples(self):
        """
        Generates every edge as a ``(source, symbol, destination)`` triple.

        Sources and destinations are yielded in identity order, symbols in
        ascending order.
        """
        for src in self._states:
            for symbol in src.symbols():
                for dest in src.transitions[symbol]:
                    yield src, symbol, dest

    def alphabet_size(self):
        """
        Returns one more than the largest non-negative symbol on any edge of
        the automaton, or 0 if there are no such edges. This is the alphabet
        a dead state completes over.
        """
        size = 0
        for state in self._states:
            for symbol in state.transitions:
                if symbol >= 0:
                    size = max(size, symbol + 1)
        return size

    def is_deterministic(self):
        """
        Returns True if the automaton has no epsilon (or other negative)
        edges and at most one destination per state and symbol.
        """
        for state in self._states:
            for symbol, dests in state.transitions.items():
                if symbol < 0 or len(dests) > 1:
                    return False
        return True

    def embed(self, other):
        """
        Copies all states and edges of another automaton into this one.

        The copies keep their accepting flags and their edges among each
        other; ``other`` is not modified. This is how automata built
        separately are combined, since states can't be shared between
        automata.

        Args:
            other (NFA): The automaton to copy.

        Returns:
            list: The new states, indexed by the identities in ``other``.

        Example:
            >>> nfa = NFA()
            >>> s = nfa.new_state()
            >>> copies = nfa.embed(basic_nfa(3))
            >>> s.new_edge(EPSILON, copies[0])
        """
        edges = list(other.triples())
        mapping = [self.new_state(state.accepting) for state in other.states()]
        for src, symbol, dest in edges:
            mapping[src.id].new_edge(symbol, mapping[dest.id])
        return mapping

    def reverse(self):
        """Returns an automaton for the reverse language. See :func:`reverse_nfa`."""
        return reverse_nfa(self)

    def powerset(self, with_dead_state=False):
        """Returns the equivalent DFA. See :func:`powerset`."""
        return powerset(self, with_dead_state)

    def minimal_dfa(self, with_dead_state=False):
        """Returns the equivalent minimal DFA. See :func:`minimal_dfa`."""
        return minimal_dfa(self, with_dead_state)

    def dump(self, stream=sys.stdout):
        """
        Prints a textual representation of the automaton to the specified
        stream. See :func:`render` for the format.
        """
        print(render(self), end="", file=stream)


# Rendering


def _render_state(state):
    head = "->" if state.nfa.start is state else ""
    name = f"[{state.id}]"
    if state.accepting:
        name = f"[{name}]"
    lines = [head + name]
    for symbol in state.symbols():
        label = "ε" if symbol == EPSILON else str(symbol)
        dests = " ".join(f"[{dest.id}]" for dest in state.transitions[symbol])
        lines.append(f"\t{label} -> {dests}")
    return "\n".join(lines) + "\n"


def render(nfa):
    """
    Returns a textual representation of an automaton for debugging and tests.

    Every state is rendered in identity order as a header line followed by one
    indented line per symbol. The header is the identity in brackets, wrapped
    in a second pair of brackets if the state is accepting and prefixed with
    ``->`` if it is the start state. Symbols are listed in ascending order, an
    epsilon edge is shown as ``ε``, and destinations are listed in identity
    order.

    Args:
        nfa (NFA): The automaton to render.

    Returns:
        str: The rendering.

    Example:
        >>> nfa = NFA()
        >>> s0, s1 = nfa.new_state(), nfa.new_state(accepting=True)
        >>> s0.new_edge(EPSILON, s1)
        >>> s0.new_edge(2, s1)
        >>> print(render(nfa), end="")
        ->[0]
        	ε -> [1]
        	2 -> [1]
        [[1]]
    """
    buf = StringIO()
    for state in nfa:
        buf.write(_render_state(state))
    return buf.getvalue()


# Transforms


def reverse_nfa(n):
    """
    Reverses the given NFA.

    Args:
        n (NFA): The NFA to be reversed.

    Returns:
        NFA: An NFA accepting the reverse of the language accepted by ``n``.

    Notes:
        Every state of ``n`` gets a mirror state with the same identity, and
        every edge is flipped, keeping its symbol (epsilon edges included).
        The mirror of the original start state becomes accepting. If ``n`` has
        exactly one accepting state its mirror is the new start state;
        otherwise a new start state is added with epsilon edges to the mirrors
        of all accepting states.
    """
    nfa = NFA()
    if not len(n):
        return nfa

    mirror = [nfa.new_state() for _ in n]
    for src, label, dest in n.triples():
        mirror[dest.id].new_edge(label, mirror[src.id])
    mirror[n.start.id].accepting = True

    final_states = n.accepting_states()
    if len(final_states) == 1:
        nfa.start = mirror[final_states[0].id]
    else:
        s = nfa.new_state()
        nfa.start = s
        for finalstate in final_states:
            s.new_edge(EPSILON, mirror[finalstate.id])

    logger.debug("Reversed {!r} into {!r}", n, nfa)
    return nfa


def _kernel(closure):
    """
    Returns the members of an epsilon closure that can affect the language.

    A non-accepting state whose edges are all epsilon (or reserved) edges only
    leads to states that are already in the closure, so it is left out. This
    keeps, for example, the extra start state added by :func:`reverse_nfa`
    from splitting otherwise identical DFA states.
    """
    kernel = Closure()
    for state in closure:
        labels = state.transitions
        if state.accepting or not labels or any(label >= 0 for label in labels):
            kernel.include(state)
    return kernel


def powerset(n, with_dead_state=False):
    """
    Converts an NFA into an equivalent DFA using the subset construction.

    Each state of the result stands for the union of epsilon closures of a
    set of states of ``n``, starting with the closure of the start state.
    Closures are memoized by their canonical key, so each distinct set becomes
    exactly one DFA state. Non-accepting states with only epsilon edges are
    dropped from the sets first, and symbols without any destination create
    no edge. New sets are processed first-in first-out and
    symbols in ascending order, which makes the state numbering of the result
    deterministic.

    Args:
        n (NFA): The automaton to convert. It is not modified.
        with_dead_state (bool, optional): Whether to complete the result with
            a dead state. Defaults to False.

    Returns:
        NFA: A DFA accepting the same language as ``n``.

    Notes:
        - A DFA state is accepting if any state in its set is accepting.
        - Symbols below ``EPSILON`` are reserved and silently skipped.
        - With ``with_dead_state``, every state missing an edge for a symbol in
          ``range(n.alphabet_size())`` gets one to a single non-accepting dead
          state, which loops to itself on every symbol. No dead state is added
          if no edge is missing.
    """
    dfa = NFA()
    if n.start is None:
        return dfa

    initial = _kernel(n.start.closure())
    seen = {initial.key(): dfa.new_state(initial.is_accepting())}
    frontier = deque([initial])
    while frontier:
        current = frontier.popleft()
        src = seen[current.key()]

        targets = {}
        for state in current:
            for label, dests in state.transitions.items():
                if label < 0 or not len(dests):
                    continue
                target = targets.setdefault(label, Closure())
                for dest in dests:
                    target.update(dest.closure())

        for label in sorted(targets):
            target = _kernel(targets[label])
            if not len(target):
                continue
            key = target.key()
            dest = seen.get(key)
            if dest is None:
                dest = seen[key] = dfa.new_state(target.is_accepting())
                frontier.append(target)
            src.new_edge(label, dest)

    if with_dead_state:
        add_dead_state(dfa, n.alphabet_size())

    logger.debug("Powerset of {!r} is {!r}", n, dfa)
    return dfa


def add_dead_state(dfa, alphabet_size):
    """
    Completes a DFA in place with a dead state.

    Every state missing an edge for a symbol in ``range(alphabet_size)`` gets
    an edge to a single dead state, created only when the first missing edge
    is found. The dead state then loops to itself on every symbol.

    Args:
        dfa (NFA): The automaton to complete.
        alphabet_size (int): The number of symbols to complete over.

    Returns:
        State: The dead state, or None if none was needed.
    """
    dead = None
    for state in dfa.states():
        for label in range(alphabet_size):
            if label not in state.transitions:
                if dead is None:
                    dead = dfa.new_state()
                state.new_edge(label, dead)

    if dead is not None:
        for label in range(alphabet_size):
            dead.new_edge(label, dead)
        logger.debug("Added dead state {} over {} symbols", dead.id, alphabet_size)
    return dead


def minimal_dfa(n, with_dead_state=False):
    """
    Converts an NFA into the equivalent minimal DFA.

    Uses Brzozowski's algorithm: reversing and determinizing twice. The
    ``with_dead_state`` flag is passed to both determinizations, so the result
    is a total DFA when it is True and a partial one without a reject state
    when it is False.

    Args:
        n (NFA): The automaton to minimize. It is not modified.
        with_dead_state (bool, optional): Whether to complete the result with
            a dead state. Defaults to False.

    Returns:
        NFA: The minimal DFA.
    """
    dfa = powerset(reverse_nfa(powerset(reverse_nfa(n), with_dead_state)), with_dead_state)
    logger.debug("Minimized {!r} into {!r}", n, dfa)
    return dfa


# Construction functions


def _insert(nfa, src, other, dest):
    # Connects src to a copy of other and the copy's final states to dest
    mapping = nfa.embed(other)
    if other.start is not None:
        src.new_edge(EPSILON, mapping[other.start.id])
    for finalstate in other.accepting_states():
        copy = mapping[finalstate.id]
        copy.accepting = False
        copy.new_edge(EPSILON, dest)
    return mapping


def basic_nfa(label):
    """
    Creates an NFA with a single edge labeled ``label`` from the start state
    to an accepting state.
    """
    nfa = NFA()
    s = nfa.new_state()
    e = nfa.new_state(accepting=True)
    s.new_edge(label, e)
    return nfa


def epsilon_nfa():
    """
    Creates an NFA accepting only the empty input, using one epsilon edge.
    """
    return basic_nfa(EPSILON)


def charset_nfa(labels):
    """
    Constructs an NFA that accepts any single symbol from ``labels``.

    Parameters:
    - labels (iterable): The accepted symbols.

    Returns:
    - NFA: The constructed NFA.

    Example:
    >>> nfa = charset_nfa([0, 2])
    """
    nfa = NFA()
    s = nfa.new_state()
    e = nfa.new_state(accepting=True)
    for label in labels:
        s.new_edge(label, e)
    return nfa


def sequence_nfa(labels):
    """
    Creates an NFA that accepts exactly the given sequence of symbols.

    Parameters:
    - labels (iterable): The symbols, in order.

    Returns:
    - NFA: A chain of ``len(labels) + 1`` states, the last one accepting.
    """
    nfa = NFA()
    s = nfa.new_state()
    for label in labels:
        e = nfa.new_state()
        s.new_edge(label, e)
        s = e
    s.accepting = True
    return nfa


def choice_nfa(n1, n2):
    """
    Creates an NFA accepting the union of the languages of two NFAs.

    Parameters:
    - n1: The first NFA to choose from.
    - n2: The second NFA to choose from.

    Returns:
    - nfa: A new NFA; ``n1`` and ``n2`` are copied, not modified.
    """
    nfa = NFA()
    s = nfa.new_state()
    e = nfa.new_state(accepting=True)
    #   -> n1 -
    #  /       \
    # s         e
    #  \       /
    #   -> n2 -
    _insert(nfa, s, n1, e)
    _insert(nfa, s, n2, e)
    return nfa


def concat_nfa(n1, n2):
    """
    Concatenates two NFAs into a single NFA.

    Parameters:
    - n1 (NFA): The first NFA to be concatenated.
    - n2 (NFA): The second NFA to be concatenated.

    Returns:
    - nfa (NFA): The resulting NFA after concatenation.
    """
    nfa = NFA()
    s = nfa.new_state()
    m = nfa.new_state()
    e = nfa.new_state(accepting=True)
    _insert(nfa, s, n1, m)
    _insert(nfa, m, n2, e)
    return nfa


def star_nfa(n):
    r"""
    Creates an NFA for the Kleene star of the given NFA.

    The new NFA has the following structure:

        -----<-----
       /           \
      s ---> n ---> e
       \           /
        ----->-----

    ``s`` is the new start state and ``e`` the new accepting state. The
    epsilon edge from ``s`` to ``e`` accepts zero repetitions, the edges from
    the final states of ``n`` back to ``s`` allow any number of them.
    """
    nfa = NFA()
    s = nfa.new_state()
    e = nfa.new_state(accepting=True)

    mapping = _insert(nfa, s, n, e)
    s.new_edge(EPSILON, e)
    for finalstate in n.accepting_states():
        mapping[finalstate.id].new_edge(EPSILON, s)
    return nfa


def plus_nfa(n):
    """
    Constructs an NFA that matches one or more occurrences of the given NFA.
    """
    return concat_nfa(n, star_nfa(n))


def optional_nfa(n):
    """
    Creates an NFA that matches zero or one occurrence of the given NFA.
    """
    return choice_nfa(n, epsilon_nfa())
