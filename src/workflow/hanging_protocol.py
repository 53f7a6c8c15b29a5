"""
Hanging Protocol Selector

This module chooses a hanging protocol (a multi-viewport layout plus
series-to-viewport rules) for a study and produces the concrete viewport
assignment.

Selection (first rule that applies wins):
    1. An explicit protocol id must exist in the catalog (NotFoundError otherwise).
    2. Otherwise protocols are ranked by specificity: modality and body part
       matched (2) > modality-only protocol matched (1) > default protocol with
       no filters (0). Protocols whose declared filters do not match, protocols
       filtering on body part without a modality, and non-default protocols
       without filters are not candidates. Ties go to the higher priority,
       then to the lowest id.
    3. No candidate at all raises NotFoundError.

Assignment walks the protocol's viewport slots in order. A slot naming a
series hint takes the unassigned series whose body part or description best
matches the hint; other slots (and hint slots nothing matches) take the next
unassigned series by series number. Slots left over stay empty.

Inputs:
    - StudyRef with its series
    - Protocol catalog (ProtocolDef list), optional explicit protocol id

Outputs:
    - HangingProtocolResult with ViewportAssignment per slot

Requirements:
    - json (layout configs stored as JSON text)
    - workflow.study_models, utils.label_matching, utils.engine_errors, utils.debug_log
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from utils.debug_log import debug_log, engine_debug
from utils.engine_errors import NotFoundError
from utils.label_matching import NO_MATCH, best_label_similarity, same_code
from workflow.study_models import SeriesRef, StudyRef, sorted_by_series_number


@dataclass(frozen=True)
class ViewportSlot:
    """
    Template for one viewport of a protocol.

    row/column default to row-major placement by slot index.
    """
    row: Optional[int] = None
    column: Optional[int] = None
    row_span: int = 1
    col_span: int = 1
    series_hint: Optional[str] = None
    window_label: Optional[str] = None
    orientation: Optional[str] = None


@dataclass(frozen=True)
class ProtocolDef:
    """A named hanging-protocol template."""
    id: Any
    name: str
    rows: int = 1
    columns: int = 1
    slots: Tuple[ViewportSlot, ...] = ()
    modality: Optional[str] = None
    body_part: Optional[str] = None
    priority: int = 0
    is_default: bool = False
    description: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.slots, tuple):
            object.__setattr__(self, "slots", tuple(self.slots))
        if self.rows < 1 or self.columns < 1:
            raise ValueError(f"Protocol {self.id} layout must be at least 1x1, got {self.rows}x{self.columns}")
        for index in range(len(self.effective_slots)):
            row, column, row_span, col_span = self.slot_placement(index)
            if row_span < 1 or col_span < 1 or row < 0 or column < 0:
                raise ValueError(f"Protocol {self.id} slot {index} has an invalid placement")
            if row + row_span > self.rows or column + col_span > self.columns:
                raise ValueError(
                    f"Protocol {self.id} slot {index} does not fit the {self.layout} layout"
                )

    @property
    def layout(self) -> str:
        """Human-readable "RxC" layout label."""
        return f"{self.rows}x{self.columns}"

    @property
    def effective_slots(self) -> Tuple[ViewportSlot, ...]:
        """Declared slots, or one plain slot per grid cell when none are declared."""
        if self.slots:
            return self.slots
        return tuple(ViewportSlot() for _ in range(self.rows * self.columns))

    def slot_placement(self, index: int) -> Tuple[int, int, int, int]:
        """(row, column, row_span, col_span) of the slot at index."""
        slot = self.effective_slots[index]
        row = slot.row if slot.row is not None else index // self.columns
        column = slot.column if slot.column is not None else index % self.columns
        return row, column, slot.row_span, slot.col_span

    @classmethod
    def from_layout_config(cls, protocol_id: Any, name: str,
                           layout_config: Union[str, Mapping[str, Any]],
                           **kwargs) -> 'ProtocolDef':
        """
        Build a protocol from a stored JSON layout config.

        Accepts {"rows", "columns", "viewports": [{"position", "seriesFilter",
        "displayPreset"}]} and the {"layout": {"rows", "cols"},
        "viewportSettings": [...]} form; windowLevel {center, width} becomes
        a "center/width" window label.
        """
        config: Dict[str, Any] = json.loads(layout_config) if isinstance(layout_config, str) else dict(layout_config)
        layout = config.get("layout") or {}
        rows = int(config.get("rows", layout.get("rows", 1)))
        columns = int(config.get("columns", config.get("cols", layout.get("cols", layout.get("columns", 1)))))
        slots = []
        for viewport in config.get("viewports", config.get("viewportSettings", [])):
            position = viewport.get("position")
            window_label = viewport.get("displayPreset") or viewport.get("windowLabel")
            window_level = viewport.get("windowLevel")
            if window_label is None and isinstance(window_level, Mapping):
                window_label = f"{window_level.get('center')}/{window_level.get('width')}"
            slots.append(ViewportSlot(
                row=position // columns if position is not None else None,
                column=position % columns if position is not None else None,
                series_hint=viewport.get("seriesFilter"),
                window_label=window_label,
                orientation=viewport.get("orientation"),
            ))
        return cls(id=protocol_id, name=name, rows=rows, columns=columns, slots=tuple(slots), **kwargs)


@dataclass(frozen=True)
class ViewportAssignment:
    """One viewport of an applied layout."""
    viewport_index: int
    row: int
    column: int
    row_span: int = 1
    col_span: int = 1
    series_id: Any = None
    window_label: Optional[str] = None
    orientation: Optional[str] = None


@dataclass(frozen=True)
class HangingProtocolResult:
    protocol_id: Any
    protocol_name: str
    layout: str
    assignments: Tuple[ViewportAssignment, ...]


def protocol_specificity(protocol: ProtocolDef, modality: Optional[str],
                         body_part: Optional[str]) -> Optional[int]:
    """
    Specificity score of a protocol for a study, or None when the protocol
    is not a candidate.

    Args:
        protocol: Protocol definition
        modality: Study modality
        body_part: Study body part

    Returns:
        2 for a modality and body part match, 1 for a modality-only protocol
        that matches, 0 for an unfiltered default protocol, otherwise None.
        A body part filter only counts alongside a modality filter.
    """
    if protocol.body_part and not protocol.modality:
        return None
    score = 0
    if protocol.modality:
        if not same_code(protocol.modality, modality):
            return None
        score += 1
    if protocol.body_part:
        if not same_code(protocol.body_part, body_part):
            return None
        score += 1
    if score == 0 and not protocol.is_default:
        return None
    return score


def select_protocol(study: StudyRef, explicit_protocol_id: Any = None,
                    available_protocols: Iterable[ProtocolDef] = ()) -> ProtocolDef:
    """
    Choose the protocol for a study.

    Raises:
        NotFoundError: explicit id absent from the catalog, or nothing matches
    """
    protocols = list(available_protocols)
    if explicit_protocol_id is not None:
        for protocol in protocols:
            if protocol.id == explicit_protocol_id:
                return protocol
        raise NotFoundError(f"Hanging protocol {explicit_protocol_id} not found")

    modality = study.effective_modality
    body_part = study.effective_body_part
    best: Optional[ProtocolDef] = None
    best_key = None
    for protocol in protocols:
        score = protocol_specificity(protocol, modality, body_part)
        if score is None:
            continue
        key = (-score, -protocol.priority, protocol.id)
        if best_key is None or key < best_key:
            best_key = key
            best = protocol

    if best is None:
        raise NotFoundError(
            f"No hanging protocol matches modality={modality!r} body part={body_part!r}"
        )
    debug_log("hanging_protocol.select_protocol", "protocol selected",
              {"study": study.id, "protocol": best.id, "specificity": -best_key[0]})
    return best


def _pick_by_hint(hint: str, ordered: Sequence[SeriesRef], taken: List[bool]) -> Optional[int]:
    best_index = None
    best_score = NO_MATCH
    for index, series in enumerate(ordered):
        if taken[index]:
            continue
        score = best_label_similarity(hint, (series.body_part, series.description))
        if score > best_score:
            best_score = score
            best_index = index
    return best_index


def _next_unassigned(taken: List[bool]) -> Optional[int]:
    for index, used in enumerate(taken):
        if not used:
            return index
    return None


def assign_viewports(protocol: ProtocolDef, series: Sequence[SeriesRef]) -> Tuple[ViewportAssignment, ...]:
    """Concrete viewport-to-series assignment of a protocol for a series list."""
    ordered = sorted_by_series_number(tuple(series))
    taken = [False] * len(ordered)
    assignments = []
    for index, slot in enumerate(protocol.effective_slots):
        chosen = None
        if slot.series_hint:
            chosen = _pick_by_hint(slot.series_hint, ordered, taken)
            if chosen is None:
                engine_debug(f"No series matches hint {slot.series_hint!r}; assigning sequentially")
        if chosen is None:
            chosen = _next_unassigned(taken)
        if chosen is not None:
            taken[chosen] = True
        row, column, row_span, col_span = protocol.slot_placement(index)
        assignments.append(ViewportAssignment(
            viewport_index=index,
            row=row,
            column=column,
            row_span=row_span,
            col_span=col_span,
            series_id=ordered[chosen].id if chosen is not None else None,
            window_label=slot.window_label,
            orientation=slot.orientation,
        ))
    return tuple(assignments)


def apply_hanging_protocol(study: StudyRef, explicit_protocol_id: Any = None,
                           available_protocols: Iterable[ProtocolDef] = ()) -> HangingProtocolResult:
    """
    Select a protocol for the study and assign its series to the viewports.

    Raises:
        NotFoundError: see select_protocol
    """
    protocol = select_protocol(study, explicit_protocol_id, available_protocols)
    return HangingProtocolResult(
        protocol_id=protocol.id,
        protocol_name=protocol.name,
        layout=protocol.layout,
        assignments=assign_viewports(protocol, study.series),
    )


def get_available_protocols(protocols: Iterable[ProtocolDef], modality: Optional[str] = None,
                            body_part: Optional[str] = None) -> List[ProtocolDef]:
    """
    Protocols usable for a modality/body part: each filter is either
    undeclared on the protocol or equal to the requested value. Ordered by
    priority (highest first), then input order.
    """
    result = []
    for protocol in protocols:
        if modality and protocol.modality and not same_code(protocol.modality, modality):
            continue
        if body_part and protocol.body_part and not same_code(protocol.body_part, body_part):
            continue
        result.append(protocol)
    result.sort(key=lambda p: -p.priority)
    return result


def default_protocols(modality: Optional[str] = None) -> List[ProtocolDef]:
    """
    Built-in protocol catalog. Ids are negative so they never collide with
    stored protocols; only the single-view layout is a default.
    """
    protocols = [
        ProtocolDef(id=-1, name="Single View (1x1)", rows=1, columns=1, is_default=True,
                    description="Single viewport for detailed viewing"),
        ProtocolDef(id=-2, name="Side-by-Side (1x2)", rows=1, columns=2,
                    description="Compare two series or timepoints"),
        ProtocolDef(id=-3, name="Quad View (2x2)", rows=2, columns=2,
                    description="Four viewports for comprehensive analysis"),
        ProtocolDef(id=-4, name="Grid 3x3", rows=3, columns=3,
                    description="Nine viewports for multi-series comparison"),
    ]
    code = (modality or "").strip().upper()
    if code in ("CT", "MR"):
        protocols.append(ProtocolDef(
            id=-5, name="MPR (Axial/Sagittal/Coronal)", rows=2, columns=2, modality=code,
            slots=(ViewportSlot(orientation="axial"), ViewportSlot(orientation="sagittal"),
                   ViewportSlot(orientation="coronal"), ViewportSlot()),
            description="Multi-planar reconstruction layout",
        ))
    if code in ("CR", "DX"):
        protocols.append(ProtocolDef(
            id=-6, name="Chest PA/Lateral", rows=1, columns=2, modality=code,
            slots=(ViewportSlot(series_hint="PA"), ViewportSlot(series_hint="LAT")),
            description="Standard chest X-ray layout",
        ))
    return protocols
