"""Unit table used to resolve and convert depth units."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class UnitResolution:
    """Result of resolving a raw unit string."""

    unit: str
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnitTable:
    """Immutable unit vocabulary with conversion factors to the canonical unit.

    Args:
        aliases (tuple[tuple[str, str], ...]): Ordered (alias, unit) pairs, e.g. ("ft", "feet").
        conversion_to_canonical (dict[str, float]): Multiplier converting each unit to the canonical unit.
        canonical_unit (str): The unit all depths are converted to.
        default_unit (str): The unit assumed when the raw unit cannot be resolved.
    """

    aliases: tuple[tuple[str, str], ...]
    conversion_to_canonical: dict[str, float] = field(hash=False)
    canonical_unit: str = "feet"
    default_unit: str = "feet"

    @classmethod
    def from_params(cls, params: dict) -> "UnitTable":
        """Create the unit table from the `depth_params.yml` parameters."""
        return cls(
            aliases=tuple((str(entry["alias"]).lower(), entry["unit"]) for entry in params["unit_aliases"]),
            conversion_to_canonical={unit: float(factor) for unit, factor in params["conversion_to_feet"].items()},
            canonical_unit=params.get("canonical_unit", "feet"),
            default_unit=params.get("default_unit", "feet"),
        )

    def resolve(self, raw_unit: str | None) -> UnitResolution:
        """Resolve a raw unit string to a unit of the table.

        The raw unit is first matched exactly against the aliases, then as a substring in either direction.
        Anything else falls back to the default unit. Every resolution other than an exact match carries a warning.

        Args:
            raw_unit (str | None): The unit as found in the document.

        Returns:
            UnitResolution: The resolved unit and the warnings produced along the way.
        """
        if raw_unit is None:
            return UnitResolution(self.default_unit, (f"No unit specified, assuming {self.default_unit}",))

        cleaned = str(raw_unit).strip().lower()
        if not cleaned:
            return UnitResolution(self.default_unit, (f"Empty unit string, assuming {self.default_unit}",))

        for alias, unit in self.aliases:
            if cleaned == alias:
                return UnitResolution(unit)

        for alias, unit in self.aliases:
            if alias in cleaned or cleaned in alias:
                return UnitResolution(unit, (f"Partial unit match: '{raw_unit}' interpreted as {unit}",))

        return UnitResolution(self.default_unit, (f"Unknown unit '{raw_unit}', assuming {self.default_unit}",))

    def to_canonical(self, value: float, unit: str) -> float:
        """Convert a value in the given unit to the canonical unit."""
        return value * self.conversion_to_canonical[unit]

    @property
    def supported_units(self) -> list[str]:
        """All aliases of the table."""
        return [alias for alias, _ in self.aliases]
