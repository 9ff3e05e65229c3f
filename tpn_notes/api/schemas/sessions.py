from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tpn_notes.core.evaluator.extensions import CustomFunction
from tpn_notes.core.notes.models import ParamValue, Segment


class SessionCreateRequest(BaseModel):
    document_id: Optional[str] = None
    segments: Optional[List[Segment]] = None
    lines: Optional[List[Any]] = None
    values: Dict[str, ParamValue] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    custom_functions: List[CustomFunction] = Field(default_factory=list)
    use_defaults: bool = Field(default=False, description="Seed the store with starter input values before `values`.")


class ValuesUpdateRequest(BaseModel):
    values: Dict[str, ParamValue]


class TestCaseLoadRequest(BaseModel):
    __test__ = False

    segment_id: int
    name: str


class ValueChangeRequest(BaseModel):
    key: str
    value: Any
    old_value: Optional[Any] = None
    confirm: bool = Field(default=False, description="Answer to a firm-severity confirmation prompt.")


class ValueChangeResponse(BaseModel):
    key: str
    old_value: Any = None
    entered_value: Any = None
    accepted_value: Any = None
    user_action: str
    warning: bool
    severity: str
    status: str
    threshold: Optional[float] = None
    threshold_name: Optional[str] = None
    message: str = ""
    alerts: List[str] = Field(default_factory=list)
    confirmations: List[str] = Field(default_factory=list)


class SessionRenderRequest(BaseModel):
    use_test_cases: bool = False
