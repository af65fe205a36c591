"""A fixed-size set of bit positions, hashable by content."""

from __future__ import annotations

__all__ = ["Bitset"]

_WORD_BITS = 64
_WORD_MASK = (1 << _WORD_BITS) - 1


class Bitset:
    """A set of bit positions stored in 64-bit words.

    Two bitsets are equal when they have the same number of words and the
    same bits set. The hash is the number of set bits XORed with every word.
    """

    __slots__ = ("_words",)

    def __init__(self, bits: int) -> None:
        if bits < 0:
            raise ValueError(f"bit count {bits} is negative")
        self._words = [0] * -(-bits // _WORD_BITS)

    @property
    def words(self) -> tuple[int, ...]:
        """The 64-bit words holding the bits, lowest positions first."""
        return tuple(self._words)

    def _index(self, pos: int) -> tuple[int, int]:
        if pos < 0:
            raise IndexError(f"bit position {pos} is negative")
        major, minor = divmod(pos, _WORD_BITS)
        if major >= len(self._words):
            raise IndexError(f"bit position {pos} is out of range")
        return major, minor

    def set(self, pos: int) -> None:
        """Set the bit at ``pos``."""
        major, minor = self._index(pos)
        self._words[major] |= 1 << minor

    def clear(self, pos: int) -> None:
        """Clear the bit at ``pos``."""
        major, minor = self._index(pos)
        self._words[major] &= ~(1 << minor) & _WORD_MASK

    def __contains__(self, pos: object) -> bool:
        if not isinstance(pos, int):
            return False
        try:
            major, minor = self._index(pos)
        except IndexError:
            return False
        return bool(self._words[major] >> minor & 1)

    def popcount(self) -> int:
        """Return the number of set bits."""
        return sum(word.bit_count() for word in self._words)

    def copy(self) -> Bitset:
        """Return an independent copy."""
        other = Bitset(0)
        other._words = list(self._words)
        return other

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._words == other._words

    def __hash__(self) -> int:
        value = self.popcount()
        for word in self._words:
            value ^= word
        return value

    def __repr__(self) -> str:
        return f"Bitset({[hex(word) for word in self._words]})"