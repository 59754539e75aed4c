"""Canonical timestamp model — the single time value a build may use."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

# DOS date/time range that ZIP headers can represent.
ZIP_MIN_EPOCH = 315532800  # 1980-01-01T00:00:00Z
ZIP_MAX_EPOCH = 4354819198  # 2107-12-31T23:59:58Z

# touch(1) style: [CC]YYMMDDhhmm[.ss]
_TOUCH_RE = re.compile(r"^(?P<stamp>\d{10}|\d{12})(?:\.(?P<seconds>\d{2}))?$")


class CanonicalTimestamp(BaseModel):
    """Seconds since the Unix epoch, always interpreted as UTC.

    Derived once per build by a timestamp oracle and passed explicitly to
    every later stage.
    """

    model_config = ConfigDict(frozen=True)

    epoch: int = Field(ge=0)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_epoch(cls, value: int | str) -> CanonicalTimestamp:
        """Build from an integer (or integer string) epoch value."""
        try:
            epoch = int(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"Not an integer epoch: {value!r}") from exc
        return cls(epoch=epoch)

    @classmethod
    def from_datetime(cls, moment: datetime) -> CanonicalTimestamp:
        """Build from an aware datetime; naive values are taken as UTC."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return cls(epoch=int(moment.timestamp()))

    @classmethod
    def parse(cls, value: str | int) -> CanonicalTimestamp:
        """Parse a user-supplied timestamp.

        Accepted forms:
            * ``@1743508800`` — epoch seconds
            * ``202504011200`` or ``2504011200.30`` — touch style, UTC
            * ``2025-04-01T12:00:00Z`` — ISO-8601, naive means UTC
        """
        if isinstance(value, int):
            return cls.from_epoch(value)

        text = value.strip()
        if text.startswith("@"):
            return cls.from_epoch(text[1:])

        match = _TOUCH_RE.match(text)
        if match:
            return cls._from_touch(match.group("stamp"), match.group("seconds"))

        try:
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"Unrecognized timestamp: {value!r}") from exc
        return cls.from_datetime(moment)

    @classmethod
    def _from_touch(cls, stamp: str, seconds: str | None) -> CanonicalTimestamp:
        if len(stamp) == 10:
            # POSIX touch: 69-99 -> 19xx, 00-68 -> 20xx
            century = "19" if int(stamp[:2]) >= 69 else "20"
            stamp = century + stamp
        try:
            moment = datetime(
                int(stamp[0:4]),
                int(stamp[4:6]),
                int(stamp[6:8]),
                int(stamp[8:10]),
                int(stamp[10:12]),
                int(seconds or 0),
                tzinfo=timezone.utc,
            )
        except ValueError as exc:
            raise ValueError(f"Invalid touch-style timestamp: {stamp!r}") from exc
        return cls.from_datetime(moment)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.epoch, tz=timezone.utc)

    @property
    def isoformat(self) -> str:
        return self.as_datetime.isoformat().replace("+00:00", "Z")

    @property
    def touch_format(self) -> str:
        return self.as_datetime.strftime("%Y%m%d%H%M.%S")

    @property
    def zip_date_time(self) -> tuple[int, int, int, int, int, int]:
        """The timestamp as a ZIP ``date_time`` tuple.

        Clamped to the DOS range, seconds rounded down to the even value
        the DOS format actually stores.
        """
        clamped = min(max(self.epoch, ZIP_MIN_EPOCH), ZIP_MAX_EPOCH)
        moment = datetime.fromtimestamp(clamped, tz=timezone.utc)
        return (
            moment.year,
            moment.month,
            moment.day,
            moment.hour,
            moment.minute,
            moment.second - moment.second % 2,
        )

    def __str__(self) -> str:
        return f"{self.isoformat} (@{self.epoch})"
