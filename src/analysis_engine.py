"""
Clinical Analysis Engine

This module is the entry point the service layer talks to. It composes the
workflow and measurement operations and supplies their configurable
defaults (prior limit, histogram bins, vertex bound, HU inference) from
the ConfigManager.

Inputs:
    - Study/series/protocol value objects, position data, calibration records
    - Pixel sample accessor for sampling measurements

Outputs:
    - Ranked priors, series pairs, comparison and hanging protocol results
    - Shapes, region statistics, histograms and formatted lengths

Requirements:
    - numpy, pydicom (through the measurement modules)
    - All workflow and measurement modules
"""

from typing import Any, Hashable, Iterable, List, Mapping, Optional, Sequence, Union

from measurement.calibration import CalibrationInfo
from measurement.geometry_parser import Shape, parse_position_data
from measurement.measurement_tools import Histogram, region_histogram
from measurement.pixel_access import PixelSampleAccessor
from measurement.region_statistics import RegionStats, compute_region_statistics
from utils.config_manager import ConfigManager
from utils.dicom_utils import format_length
from workflow.hanging_protocol import HangingProtocolResult, ProtocolDef, apply_hanging_protocol
from workflow.prior_study_resolver import find_priors
from workflow.series_pairing import pair_series
from workflow.study_comparison import compare_studies
from workflow.study_models import ComparisonResult, SeriesPair, SeriesRef, StudyRef


class ClinicalAnalysisEngine:
    """
    Facade over the workflow and measurement engines.

    Every operation is pure apart from reading configuration; the same
    inputs and settings always produce the same outputs.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize the engine.

        Args:
            config_manager: Settings source; a default ConfigManager is created if None
        """
        self.config_manager = config_manager if config_manager is not None else ConfigManager()

    # Workflow

    def find_priors(self, patient_id: Optional[str], reference: StudyRef,
                    candidates: Iterable[StudyRef], limit: Optional[int] = None) -> List[StudyRef]:
        """Ranked prior studies; limit defaults to the configured prior search limit."""
        if limit is None:
            limit = self.config_manager.get_prior_search_limit()
        return find_priors(patient_id, reference, candidates, limit)

    def pair_series(self, current_series: Sequence[SeriesRef],
                    prior_series: Sequence[SeriesRef]) -> List[SeriesPair]:
        return pair_series(current_series, prior_series)

    def compare_studies(self, current: StudyRef, prior: Optional[StudyRef] = None,
                        candidates: Iterable[StudyRef] = ()) -> ComparisonResult:
        return compare_studies(current, prior, candidates)

    def apply_hanging_protocol(self, study: StudyRef, explicit_protocol_id: Any = None,
                               available_protocols: Iterable[ProtocolDef] = ()) -> HangingProtocolResult:
        return apply_hanging_protocol(study, explicit_protocol_id, available_protocols)

    # Measurement

    def resolve_calibration(self, record: Mapping[str, Any]) -> CalibrationInfo:
        """Calibration from stored instance metadata, honoring the HU inference setting."""
        return CalibrationInfo.from_record(
            record, infer_hounsfield=self.config_manager.get_infer_hounsfield_units()
        )

    def parse_geometry(self, position_data: Union[str, bytes, Mapping[str, Any]],
                       frame_number: Optional[int] = 0,
                       calibration: Optional[CalibrationInfo] = None) -> Shape:
        """
        Parse position data, bounds-checked against the calibration's matrix
        size when one is given and limited to the configured vertex count.
        """
        rows = calibration.rows if calibration is not None else None
        columns = calibration.columns if calibration is not None else None
        return parse_position_data(
            position_data,
            frame_number,
            rows=rows,
            columns=columns,
            max_vertices=self.config_manager.get_max_polygon_vertices(),
        )

    def compute(self, shape: Shape, calibration: CalibrationInfo,
                pixel_accessor: Optional[PixelSampleAccessor] = None,
                instance_id: Hashable = None) -> RegionStats:
        return compute_region_statistics(shape, calibration, pixel_accessor, instance_id)

    def histogram(self, shape: Shape, calibration: CalibrationInfo,
                  pixel_accessor: PixelSampleAccessor, instance_id: Hashable = None,
                  bins: Optional[int] = None) -> Histogram:
        """Region histogram; bins defaults to the configured bin count."""
        if bins is None:
            bins = self.config_manager.get_histogram_bins()
        return region_histogram(shape, calibration, pixel_accessor, instance_id, bins)

    def format_length(self, stats: RegionStats) -> str:
        """Display text for a line measurement in the configured unit."""
        return format_length(stats.area_or_length, stats.unit,
                             self.config_manager.get_length_display_unit())
