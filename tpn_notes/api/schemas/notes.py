from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tpn_notes.core.evaluator.extensions import CustomFunction
from tpn_notes.core.notes.models import ParamValue, Segment


class ParseRequest(BaseModel):
    lines: List[Any] = Field(default_factory=list, description='NOTE records ({"TEXT": ...}) or plain strings.')


class SegmentsResponse(BaseModel):
    segments: List[Segment]


class SerializeRequest(BaseModel):
    segments: List[Segment] = Field(default_factory=list)


class DependenciesRequest(BaseModel):
    code: Optional[str] = None
    segments: List[Segment] = Field(default_factory=list)


class DependenciesResponse(BaseModel):
    direct: List[str]
    transitive: List[str]
    required_inputs: List[str]


class EvaluationContext(BaseModel):
    values: Dict[str, ParamValue] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    custom_functions: List[CustomFunction] = Field(default_factory=list)
    allow_override: bool = False


class RenderRequest(EvaluationContext):
    segments: List[Segment] = Field(default_factory=list)
    lines: Optional[List[Any]] = Field(default=None, description="Parsed when segments are not given.")
    bindings: Dict[int, Dict[str, ParamValue]] = Field(default_factory=dict)
    page: bool = False
    title: str = "Note preview"


class RenderResponse(BaseModel):
    html: str
    segment_count: int
    ignored_keys: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)


class TestCasesRunRequest(EvaluationContext):
    __test__ = False

    segment: Segment
    names: Optional[List[str]] = Field(default=None, description="Run only these test cases.")


class RangeThreshold(BaseModel):
    THRESHOLD: str
    VALUE: Optional[float] = None


class ValidationCheckRequest(BaseModel):
    key: str
    value: Any
    reference_range: Optional[List[RangeThreshold]] = Field(
        default=None, description="Ad-hoc thresholds; the configured table is used when omitted."
    )
    uom: Optional[str] = None


class ValidationCheckResponse(BaseModel):
    key: str
    status: str
    severity: str
    message: str
    threshold: Optional[float] = None
    threshold_name: Optional[str] = None


class DocumentPutRequest(BaseModel):
    segments: Optional[List[Segment]] = None
    lines: Optional[List[Any]] = None


class DocumentResponse(BaseModel):
    id: str
    segments: List[Segment]
    metadata: Dict[str, Any] = Field(default_factory=dict)
