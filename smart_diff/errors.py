"""Error taxonomy.

Every error derives from :class:`SmartDiffError` (itself a ``ValueError``).
Errors are contained per version by :class:`smart_diff.session.ComparisonSession`
and turned into placeholder images; none of them should escape to the shell.
"""

from typing import Optional


class SmartDiffError(ValueError):
    """Base class for all room diff failures."""


class MalformedRoom(SmartDiffError):
    """Structural parse failure. Fatal to one version's decode.

    Attributes:
        field: Path of the offending field, e.g. ``States/State[0]/GFXset``.
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class UnresolvedTile(SmartDiffError):
    """A tile placement that does not resolve against the tileset.

    Recoverable: the decoder records one of these per bad placement and
    substitutes the placeholder tile.
    """

    def __init__(
        self, layer: int, x: int, y: int, index: int, reason: Optional[str] = None
    ):
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Layer {layer} tile ({x}, {y}) references unknown tile {index:#05x}{detail}"
        )
        self.layer = layer
        self.x = x
        self.y = y
        self.index = index
        self.reason = reason


class DimensionMismatch(SmartDiffError):
    """Working and reference images cannot be compared pixel by pixel."""

    def __init__(self, working_shape: tuple, reference_shape: tuple):
        super().__init__(
            f"Cannot diff images of shape {working_shape} and {reference_shape}"
        )
        self.working_shape = working_shape
        self.reference_shape = reference_shape


class MissingReferenceContent(SmartDiffError):
    """The reference version does not contain the room at all."""

    def __init__(self, room_id: str, reference: Optional[str] = None):
        where = f" at {reference}" if reference else ""
        super().__init__(f"No reference data for room {room_id}{where}")
        self.room_id = room_id
        self.reference = reference


class SourceNotFound(SmartDiffError):
    """A file is not present (or not tracked) in a file source."""

    def __init__(self, path: str, origin: str):
        super().__init__(f"{path} not found in {origin}")
        self.path = path
        self.origin = origin
