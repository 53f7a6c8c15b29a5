"""
Study and Series Value Objects

Minimal study/series identity used for workflow decisions (prior lookup,
series pairing, hanging protocols), plus the comparison result types.
All objects are immutable snapshots built per request from already-loaded
records.

Inputs:
    - Study/series records from the data-access collaborator (mappings or kwargs)

Outputs:
    - StudyRef, SeriesRef, SeriesPair, ComparisonResult

Requirements:
    - Standard library only (dataclasses, datetime, enum)
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union

StudyDate = Union[date, datetime]


def _parse_study_date(value: Any) -> Optional[StudyDate]:
    """Accept date/datetime, DICOM DA ("YYYYMMDD") or ISO text; anything else is absent."""
    if value is None or isinstance(value, (date, datetime)):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y%m%d", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_series_number(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def as_datetime(value: StudyDate) -> datetime:
    """
    Dates compare and subtract as midnight datetimes. Timezone-aware values
    are converted to UTC and then made naive.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def _lookup(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


@dataclass(frozen=True)
class SeriesRef:
    """A series within a study."""
    id: Any
    series_number: Optional[int] = None
    modality: Optional[str] = None
    body_part: Optional[str] = None
    description: Optional[str] = None
    uid: Optional[str] = None
    instance_count: int = 0

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'SeriesRef':
        """Build from a stored series record (DICOM keywords or camelCase keys)."""
        return cls(
            id=_lookup(record, "id", "Id"),
            series_number=_parse_series_number(_lookup(record, "seriesNumber", "SeriesNumber")),
            modality=_lookup(record, "modality", "Modality"),
            body_part=_lookup(record, "bodyPartExamined", "BodyPartExamined", "bodyPart"),
            description=_lookup(record, "seriesDescription", "SeriesDescription", "description"),
            uid=_lookup(record, "seriesInstanceUid", "SeriesInstanceUID", "uid"),
            instance_count=int(_lookup(record, "numberOfInstances", "NumberOfInstances") or 0),
        )


@dataclass(frozen=True)
class StudyRef:
    """
    Minimal study identity.

    modality and body_part fall back to the first series (by series number)
    that carries one when not set on the study itself.
    """
    id: Any
    uid: str
    patient_id: Optional[str] = None
    description: Optional[str] = None
    study_date: Optional[StudyDate] = None
    modality: Optional[str] = None
    body_part: Optional[str] = None
    patient_name: Optional[str] = None
    series: Tuple[SeriesRef, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if not isinstance(self.series, tuple):
            object.__setattr__(self, "series", tuple(self.series))

    @property
    def effective_modality(self) -> Optional[str]:
        if self.modality:
            return self.modality
        for series in sorted_by_series_number(self.series):
            if series.modality:
                return series.modality
        return None

    @property
    def effective_body_part(self) -> Optional[str]:
        if self.body_part:
            return self.body_part
        for series in sorted_by_series_number(self.series):
            if series.body_part:
                return series.body_part
        return None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'StudyRef':
        """Build from a stored study record with an optional nested "series" list."""
        series_records = _lookup(record, "series", "Series") or ()
        return cls(
            id=_lookup(record, "id", "Id"),
            uid=_lookup(record, "studyInstanceUid", "StudyInstanceUID", "uid") or "",
            patient_id=_lookup(record, "patientId", "PatientID"),
            description=_lookup(record, "studyDescription", "StudyDescription", "description"),
            study_date=_parse_study_date(_lookup(record, "studyDate", "StudyDate")),
            modality=_lookup(record, "modality", "Modality"),
            body_part=_lookup(record, "bodyPart", "BodyPartExamined"),
            patient_name=_lookup(record, "patientName", "PatientName"),
            series=tuple(SeriesRef.from_record(s) for s in series_records),
        )


def sorted_by_series_number(series: Tuple[SeriesRef, ...]) -> Tuple[SeriesRef, ...]:
    """Ascending series number; series without a number last; input order breaks ties."""
    indexed = list(enumerate(series))
    indexed.sort(key=lambda item: (item[1].series_number is None,
                                   item[1].series_number if item[1].series_number is not None else 0,
                                   item[0]))
    return tuple(s for _, s in indexed)


class MatchBasis(Enum):
    """Why a current series was paired with a prior series."""
    EXACT_BODY_PART = "exact_body_part"
    PARTIAL_BODY_PART = "partial_body_part"
    MODALITY_ONLY = "modality_only"
    CURRENT_ONLY = "current_only"
    PRIOR_ONLY = "prior_only"


@dataclass(frozen=True)
class SeriesPair:
    """One current/prior series alignment; at least one side is present."""
    current: Optional[SeriesRef]
    prior: Optional[SeriesRef]
    basis: MatchBasis
    confidence: float = 0.0

    def __post_init__(self):
        if self.current is None and self.prior is None:
            raise ValueError("SeriesPair requires a current or a prior series")

    @property
    def is_matched(self) -> bool:
        return self.current is not None and self.prior is not None


@dataclass(frozen=True)
class ComparisonResult:
    """Outcome of comparing a current study with an optional prior."""
    current_study: StudyRef
    prior_study: Optional[StudyRef]
    time_delta: Optional[timedelta]
    series_pairs: Tuple[SeriesPair, ...]

    @property
    def has_prior(self) -> bool:
        return self.prior_study is not None
