from __future__ import annotations

from typing import Dict, List, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


SegmentKind = Literal["static", "dynamic"]
MatchType = Literal["exact", "contains", "regex"]
ParamValue = Union[float, int, str, bool, None]

OPEN_DELIMITER = "[f("
CLOSE_DELIMITER = ")]"


class NoteLine(BaseModel):
    """One persisted record of a note: ``{"TEXT": "..."}``."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(default="", validation_alias=AliasChoices("TEXT", "text"), serialization_alias="TEXT")


class TestCase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # keeps pytest from collecting this model as a test class
    __test__ = False

    name: str = "Default"
    variables: Dict[str, ParamValue] = Field(default_factory=dict)
    expected: str = Field(default="", validation_alias=AliasChoices("expected", "expectedOutput"))
    match_type: MatchType = Field(default="exact", validation_alias=AliasChoices("match_type", "matchType"))


class Segment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = 0
    kind: SegmentKind = Field(validation_alias=AliasChoices("kind", "type"))
    name: str = ""
    content: str = ""
    test_cases: List[TestCase] = Field(
        default_factory=list,
        validation_alias=AliasChoices("test_cases", "testCases"),
    )

    @property
    def is_dynamic(self) -> bool:
        return self.kind == "dynamic"

    def find_test_case(self, name: str) -> TestCase | None:
        for tc in self.test_cases:
            if tc.name == name:
                return tc
        return None
