"""
Pydantic schema models for the diagram application's threat model documents.

The primary dialect (v2) is checked field by field; the legacy v1 layout and
the TM-BOM / Open Threat Model exchange formats are only recognised.
"""
from typing import List, Dict, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class _Lenient(BaseModel):
    model_config = ConfigDict(extra='allow')


class Contributor(_Lenient):
    name: str


class SummaryV2(_Lenient):
    title: str = Field(..., min_length=1, description="Threat model title")
    owner: Optional[str] = None
    description: Optional[str] = None
    id: Optional[Union[int, str]] = None


class DiagramV2(_Lenient):
    id: Union[int, str]
    title: str
    diagramType: str
    version: str = Field(..., pattern=r'^2\.')
    placeholder: Optional[str] = None
    thumbnail: Optional[str] = None
    cells: List[Dict[str, Any]] = Field(default_factory=list)


class DetailV2(_Lenient):
    contributors: List[Union[Contributor, Dict[str, Any], str]] = Field(default_factory=list)
    diagrams: List[DiagramV2]
    diagramTop: int = 0
    reviewer: str = ''
    threatTop: int = 0


class ThreatModelV2(_Lenient):
    version: str = Field(..., pattern=r'^2\.')
    summary: SummaryV2
    detail: DetailV2


class DiagramJsonV1(_Lenient):
    cells: List[Dict[str, Any]]


class DiagramV1(_Lenient):
    id: Union[int, str]
    title: str
    diagramType: Optional[str] = None
    diagramJson: DiagramJsonV1


class DetailV1(_Lenient):
    contributors: List[Any] = Field(default_factory=list)
    diagrams: List[DiagramV1]


class SummaryV1(_Lenient):
    title: str


class ThreatModelV1(_Lenient):
    summary: SummaryV1
    detail: DetailV1


class TmBomModel(_Lenient):
    version: str
    scope: Dict[str, Any]
    components: Optional[List[Dict[str, Any]]] = None


class OtmModel(_Lenient):
    otmVersion: str
    project: Dict[str, Any]


def _matches(model_class, data) -> bool:
    if not isinstance(data, dict):
        return False
    try:
        model_class.model_validate(data)
        return True
    except ValidationError:
        return False


def is_v2(data) -> bool:
    return _matches(ThreatModelV2, data)


def is_v1(data) -> bool:
    # v1 documents carry no top-level version
    return isinstance(data, dict) and 'version' not in data and _matches(ThreatModelV1, data)


def is_tm_bom(data) -> bool:
    return _matches(TmBomModel, data)


def is_otm(data) -> bool:
    return _matches(OtmModel, data)


def check_v2(data) -> List[Dict[str, Any]]:
    """Return pydantic error dicts for a v2 document, empty when it conforms."""
    if not isinstance(data, dict):
        return [{'type': 'model_type', 'loc': (), 'msg': 'Threat model must be an object'}]
    try:
        ThreatModelV2.model_validate(data)
        return []
    except ValidationError as e:
        return e.errors(include_url=False)
