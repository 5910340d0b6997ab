"""
Shared Records

Feature records captured from the page and the result records handed back
to the runner/reporter. Everything here is plain data: dataclasses and
value enums, no page access.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
import time


# ==================== Enums ====================

class Intent(str, Enum):
    """What the step wants to do with the element"""
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"
    HOVER = "hover"
    NAVIGATE = "navigate"
    VALIDATE = "validate"
    EXTRACT = "extract"
    WAIT = "wait"


class FailureType(str, Enum):
    """Failure taxonomy exposed to callers"""
    ELEMENT_NOT_FOUND = "ElementNotFound"
    ELEMENT_NOT_VISIBLE = "ElementNotVisible"
    ELEMENT_NOT_INTERACTIVE = "ElementNotInteractive"
    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    JAVASCRIPT_ERROR = "JavaScriptError"
    MODAL_BLOCKING = "ModalBlocking"
    UNEXPECTED_STATE = "UnexpectedState"
    UNKNOWN = "Unknown"


class AIOperationType(str, Enum):
    """Kinds of operations recorded by the orchestrator and ledger"""
    IDENTIFICATION = "identification"
    HEALING = "healing"
    ANALYSIS = "analysis"
    PREDICTION = "prediction"
    LEARNING = "learning"


class IdentificationMethod(str, Enum):
    NLP = "nlp"
    VISUAL = "visual"
    PATTERN = "pattern"
    STRUCTURAL = "structural"
    TEXT = "text"


# ==================== Element Features ====================

@dataclass(frozen=True)
class TextFeatures:
    content: str = ""
    visible_text: str = ""
    aria_label: Optional[str] = None
    title: Optional[str] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None
    alt: Optional[str] = None


@dataclass(frozen=True)
class VisualFeatures:
    is_visible: bool = True
    bounding_box: Optional[Dict[str, float]] = None
    z_index: int = 0
    opacity: float = 1.0
    background_color: str = ""
    color: str = ""
    font_size: str = ""
    font_weight: str = ""
    has_high_contrast: bool = False
    has_animation: bool = False
    display: str = ""
    position: str = ""
    cursor: str = ""
    in_viewport: bool = False
    visual_weight: float = 0.0


@dataclass(frozen=True)
class StructuralFeatures:
    tag_name: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    class_list: List[str] = field(default_factory=list)
    id: str = ""
    is_interactive: bool = False
    has_children: bool = False
    child_count: int = 0
    depth: int = 0
    path: List[str] = field(default_factory=list)
    role: Optional[str] = None
    form_element: bool = False
    input_type: Optional[str] = None
    href: Optional[str] = None
    src: Optional[str] = None
    disabled: Optional[bool] = None
    read_only: Optional[bool] = None
    checked: Optional[bool] = None
    selected: Optional[bool] = None
    sibling_count: int = 0
    sibling_index: int = 0


@dataclass(frozen=True)
class SemanticFeatures:
    role: str = "generic"
    aria_label: Optional[str] = None
    aria_described_by: Optional[str] = None
    aria_labelled_by: Optional[str] = None
    is_landmark: bool = False
    heading_level: int = 0
    list_item: bool = False
    list_container: bool = False
    table_cell: bool = False
    table_row: bool = False
    semantic_type: str = "generic"
    is_required: Optional[bool] = None


@dataclass(frozen=True)
class ContextFeatures:
    parent_tag: str = ""
    parent_text: str = ""
    sibling_texts: List[str] = field(default_factory=list)
    nearby_heading: str = ""
    label_text: str = ""
    form_id: str = ""
    table_headers: Union[List[str], str] = field(default_factory=list)
    nearest_landmark: Optional[Dict[str, str]] = None
    preceding_text: str = ""
    following_text: str = ""

    # Deep context merged in at candidate-collection time
    surrounding_text: str = ""
    has_label: bool = False
    semantic_context: str = ""
    nearby_headings: str = ""
    test_id: str = ""
    inner_text: str = ""
    table_context: str = ""
    table_row_index: int = -1
    table_cell_index: int = -1
    framework_hints: str = ""
    component_library: str = ""
    in_shadow_dom: bool = False
    shadow_root_host: str = ""
    in_iframe: bool = False
    has_loading_indicator: bool = False

    def table_headers_text(self) -> str:
        """Table headers as one comma separated string"""
        if isinstance(self.table_headers, str):
            return self.table_headers
        return ", ".join(h for h in self.table_headers if h)


def _pick(data: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    """Translate camelCase page keys to dataclass field names"""
    return {attr: data[key] for key, attr in mapping.items() if key in data and data[key] is not None}


_TEXT_KEYS = {
    "content": "content", "visibleText": "visible_text", "ariaLabel": "aria_label",
    "title": "title", "placeholder": "placeholder", "value": "value", "alt": "alt",
}
_VISUAL_KEYS = {
    "isVisible": "is_visible", "boundingBox": "bounding_box", "zIndex": "z_index",
    "opacity": "opacity", "backgroundColor": "background_color", "color": "color",
    "fontSize": "font_size", "fontWeight": "font_weight", "hasHighContrast": "has_high_contrast",
    "hasAnimation": "has_animation", "display": "display", "position": "position",
    "cursor": "cursor", "inViewport": "in_viewport", "visualWeight": "visual_weight",
}
_STRUCTURAL_KEYS = {
    "tagName": "tag_name", "attributes": "attributes", "classList": "class_list", "id": "id",
    "isInteractive": "is_interactive", "hasChildren": "has_children", "childCount": "child_count",
    "depth": "depth", "path": "path", "role": "role", "formElement": "form_element",
    "inputType": "input_type", "href": "href", "src": "src", "disabled": "disabled",
    "readOnly": "read_only", "checked": "checked", "selected": "selected",
    "siblingCount": "sibling_count", "siblingIndex": "sibling_index",
}
_SEMANTIC_KEYS = {
    "role": "role", "ariaLabel": "aria_label", "ariaDescribedBy": "aria_described_by",
    "ariaLabelledBy": "aria_labelled_by", "isLandmark": "is_landmark",
    "headingLevel": "heading_level", "listItem": "list_item", "listContainer": "list_container",
    "tableCell": "table_cell", "tableRow": "table_row", "semanticType": "semantic_type",
    "isRequired": "is_required",
}
_CONTEXT_KEYS = {
    "parentTag": "parent_tag", "parentText": "parent_text", "siblingTexts": "sibling_texts",
    "nearbyHeading": "nearby_heading", "labelText": "label_text", "formId": "form_id",
    "tableHeaders": "table_headers", "nearestLandmark": "nearest_landmark",
    "precedingText": "preceding_text", "followingText": "following_text",
    "surroundingText": "surrounding_text", "hasLabel": "has_label",
    "semanticContext": "semantic_context", "nearbyHeadings": "nearby_headings",
    "testId": "test_id", "innerText": "inner_text", "tableContext": "table_context",
    "tableRowIndex": "table_row_index", "tableCellIndex": "table_cell_index",
    "frameworkHints": "framework_hints", "componentLibrary": "component_library",
    "inShadowDOM": "in_shadow_dom", "shadowRootHost": "shadow_root_host",
    "inIframe": "in_iframe", "hasLoadingIndicator": "has_loading_indicator",
}


@dataclass(frozen=True)
class ElementFeatures:
    """
    Snapshot of one element across five dimensions.

    A capture is never mutated; enrichment with deep-search context goes
    through with_context() which returns a new record.
    """
    text: TextFeatures = field(default_factory=TextFeatures)
    visual: VisualFeatures = field(default_factory=VisualFeatures)
    structural: StructuralFeatures = field(default_factory=StructuralFeatures)
    semantic: SemanticFeatures = field(default_factory=SemanticFeatures)
    context: ContextFeatures = field(default_factory=ContextFeatures)
    timestamp: float = field(default_factory=time.time)

    def with_context(self, **updates) -> "ElementFeatures":
        """Return a copy whose context carries the given fields"""
        return replace(self, context=replace(self.context, **updates))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementFeatures":
        """Build from the camelCase structure returned by page evaluation"""
        return cls(
            text=TextFeatures(**_pick(data.get("text") or {}, _TEXT_KEYS)),
            visual=VisualFeatures(**_pick(data.get("visual") or {}, _VISUAL_KEYS)),
            structural=StructuralFeatures(**_pick(data.get("structural") or {}, _STRUCTURAL_KEYS)),
            semantic=SemanticFeatures(**_pick(data.get("semantic") or {}, _SEMANTIC_KEYS)),
            context=ContextFeatures(**_pick(data.get("context") or {}, _CONTEXT_KEYS)),
            timestamp=data.get("timestamp", time.time()),
        )


# ==================== Natural Language ====================

@dataclass
class VisualCues:
    colors: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    shapes: Optional[List[str]] = None

    def any(self) -> bool:
        return bool(self.colors or self.sizes or self.shapes)


@dataclass
class PositionCues:
    position: Optional[str] = None
    relative_to: Optional[str] = None
    relation: Optional[str] = None


@dataclass
class NLPResult:
    """Parsed form of a free-text element description"""
    intent: Intent
    keywords: List[str]
    visual_cues: VisualCues
    position_cues: PositionCues
    confidence: float
    form_context: bool = False
    element_type: Optional[str] = None
    text_content: Optional[str] = None
    expected_roles: Optional[List[str]] = None


# ==================== Identification ====================

@dataclass
class Alternative:
    locator: Any
    confidence: float
    selector: str = ""


@dataclass
class ElementIdentificationResult:
    """Best match for a description plus up to three runners-up"""
    locator: Any
    confidence: float
    method: IdentificationMethod
    features: ElementFeatures
    selector: str = ""
    alternatives: List[Alternative] = field(default_factory=list)
    duration_ms: int = 0


@dataclass
class AIOperation:
    id: str
    type: AIOperationType
    timestamp: datetime
    duration_ms: int
    success: bool
    confidence: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


# ==================== Failure Analysis ====================

@dataclass
class DiagnosticStats:
    total_errors: int = 0
    error_logs: int = 0
    warning_logs: int = 0
    failed_requests: int = 0


@dataclass
class PageDiagnosticData:
    """Console/error/network summary for a page at failure time"""
    url: str = ""
    page_errors: List[Dict[str, Any]] = field(default_factory=list)
    console_logs: List[Dict[str, Any]] = field(default_factory=list)
    failed_requests: List[Dict[str, Any]] = field(default_factory=list)
    stats: DiagnosticStats = field(default_factory=DiagnosticStats)


@dataclass
class FailureContext:
    error: BaseException
    step: str
    url: str
    timestamp: datetime = field(default_factory=datetime.now)
    diagnostics: Optional[PageDiagnosticData] = None


@dataclass
class FailureAnalysis:
    failure_type: FailureType
    healable: bool
    confidence: float
    suggested_strategies: List[str]
    root_cause: str
    context: FailureContext
    diagnostic_insights: List[str] = field(default_factory=list)


# ==================== Healing ====================

@dataclass
class HealingAttemptResult:
    success: bool
    confidence: float = 0.0
    duration_ms: int = 0
    locator: Optional[str] = None


@dataclass
class HealingContext:
    page: Any
    original_locator: str
    failure_reason: str
    element: Any = None
    features: Optional[ElementFeatures] = None
    diagnostics: Optional[PageDiagnosticData] = None
    attempted_strategies: Set[str] = field(default_factory=set)


StrategyExecutor = Callable[[HealingContext], Awaitable[HealingAttemptResult]]


@dataclass
class HealingStrategy:
    """A named recovery action with a priority and an async executor"""
    name: str
    priority: float
    apply: StrategyExecutor


@dataclass
class IntelligentHealingResult:
    success: bool
    strategy: str
    confidence: float
    attempts: int
    duration_ms: int
    healed_locator: Optional[str] = None
    original_locator: Optional[str] = None
    diagnostic_context: Optional[PageDiagnosticData] = None
    learned_from: Optional[str] = None
    alternative_locators: List[Dict[str, Any]] = field(default_factory=list)


# ==================== Prediction ====================

@dataclass
class FragilityScore:
    locator: str
    score: float
    heal_count: int = 0
    failure_rate: float = 0.0
    locator_stability: float = 1.0
    recency_factor: float = 0.0
    factors: List[str] = field(default_factory=list)


@dataclass
class PredictionResult:
    will_fail: bool
    confidence: float
    fragility_score: float
    reason: str = ""
    suggested_locator: Optional[str] = None
    preemptive_action: Optional[str] = None
