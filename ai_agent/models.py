"""Pydantic v2 models for the generation pipeline.

Defines the request envelope, the closed value sets the provider is asked to
choose from, and the validated output of each pipeline stage.  Field names
are snake_case in Python and camelCase on the wire (``projectName``,
``integrationCode``, ``startPrompt``); both spellings are accepted on input.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_dict(self) -> dict[str, Any]:
        """Serialise using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class PipelineStage(str, Enum):
    """The four ordered pipeline stages."""
    INTENT = "intent"
    ARCHITECTURE = "architecture"
    CODE = "code"
    CONTEXT = "context"


STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.INTENT,
    PipelineStage.ARCHITECTURE,
    PipelineStage.CODE,
    PipelineStage.CONTEXT,
)


class Category(str, Enum):
    """Product category; doubles as the starter template name."""
    SAAS = "saas"
    LANDING_PAGE = "landing-page"
    DASHBOARD = "dashboard"
    ECOMMERCE = "ecommerce"
    BLOG = "blog"
    MARKETPLACE = "marketplace"
    PORTFOLIO = "portfolio"
    INTERNAL_TOOL = "internal-tool"


class Complexity(str, Enum):
    """Estimated project complexity."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class AuthProvider(str, Enum):
    SUPABASE = "supabase"
    CLERK = "clerk"
    NEXTAUTH = "nextauth"


class DatabaseProvider(str, Enum):
    SUPABASE = "supabase"


class PaymentsProvider(str, Enum):
    STRIPE = "stripe"
    LEMON_SQUEEZY = "lemon-squeezy"
    PADDLE = "paddle"


class EmailProvider(str, Enum):
    RESEND = "resend"
    SENDGRID = "sendgrid"
    POSTMARK = "postmark"


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class AnalyticsProvider(str, Enum):
    POSTHOG = "posthog"
    PLAUSIBLE = "plausible"
    MIXPANEL = "mixpanel"


class StorageProvider(str, Enum):
    SUPABASE = "supabase"
    CLOUDFLARE = "cloudflare"
    S3 = "s3"


class HTTPMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RouteType(str, Enum):
    API = "api"
    PAGE = "page"


class ComponentType(str, Enum):
    UI = "ui"
    LAYOUT = "layout"
    FEATURE = "feature"
    FORM = "form"


class ComponentTemplate(str, Enum):
    CREATE_NEW = "create-new"
    REUSE = "reuse"


class PageLayout(str, Enum):
    DEFAULT = "default"
    DASHBOARD = "dashboard"
    AUTH = "auth"
    MINIMAL = "minimal"


class InspirationType(str, Enum):
    URL = "url"
    IMAGE = "image"
    FIGMA = "figma"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class Inspiration(_WireModel):
    """A reference the user wants the product to resemble."""
    model_config = ConfigDict(frozen=True)

    type: InspirationType
    value: str = Field(..., min_length=1)
    preview: Optional[str] = None


class GenerationRequest(_WireModel):
    """Immutable input to one pipeline run."""
    model_config = ConfigDict(frozen=True)

    description: str = Field(..., min_length=1, description="Free-text product description")
    project_name: Optional[str] = Field(default=None)
    template_hint: Optional[str] = Field(default=None)
    vision: Optional[str] = Field(default=None)
    mission: Optional[str] = Field(default=None)
    inspirations: tuple[Inspiration, ...] = Field(default=())


# ---------------------------------------------------------------------------
# Intent stage
# ---------------------------------------------------------------------------

class IntegrationRequirements(_WireModel):
    """Third-party capabilities the project needs; ``None`` means not needed."""
    auth: Optional[AuthProvider] = None
    db: Optional[DatabaseProvider] = None
    payments: Optional[PaymentsProvider] = None
    email: Optional[EmailProvider] = None
    ai: Optional[AIProvider] = None
    analytics: Optional[AnalyticsProvider] = None
    storage: Optional[StorageProvider] = None

    def active(self) -> dict[str, str]:
        """Return ``{capability: provider}`` for every configured integration."""
        return {
            name: value.value
            for name, value in self
            if value is not None
        }


class ProjectIntent(_WireModel):
    """Classified intent of the product description."""
    category: Category
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = Field(..., min_length=10)
    features: list[str] = Field(..., min_length=1)
    integrations: IntegrationRequirements = Field(default_factory=IntegrationRequirements)
    complexity: Complexity = Complexity.MODERATE
    suggested_template: Optional[Category] = None


# ---------------------------------------------------------------------------
# Architecture stage
# ---------------------------------------------------------------------------

class PageDefinition(_WireModel):
    path: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    layout: PageLayout = PageLayout.DEFAULT
    components: list[str] = Field(default_factory=list)


class ComponentDefinition(_WireModel):
    name: str = Field(..., min_length=1)
    type: ComponentType = ComponentType.UI
    template: ComponentTemplate = ComponentTemplate.CREATE_NEW
    description: str = Field(..., min_length=1)


class RouteDefinition(_WireModel):
    path: str = Field(..., min_length=1)
    type: RouteType = RouteType.API
    method: Optional[HTTPMethod] = None
    description: str = Field(..., min_length=1)


class ProjectArchitecture(_WireModel):
    """Pages, components and routes planned for the project."""
    template: Category
    pages: list[PageDefinition] = Field(..., min_length=1)
    components: list[ComponentDefinition] = Field(..., min_length=1)
    routes: list[RouteDefinition] = Field(default_factory=list)
    integrations: IntegrationRequirements = Field(default_factory=IntegrationRequirements)


# ---------------------------------------------------------------------------
# Code stage
# ---------------------------------------------------------------------------

class FileDefinition(_WireModel):
    path: str = Field(..., min_length=1)
    content: str
    overwrite: bool = False


class IntegrationCode(_WireModel):
    integration: str = Field(..., min_length=1)
    files: list[FileDefinition] = Field(..., min_length=1)


class GeneratedCode(_WireModel):
    files: list[FileDefinition] = Field(..., min_length=1)
    integration_code: list[IntegrationCode] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Context stage
# ---------------------------------------------------------------------------

class CursorContext(_WireModel):
    """Guidance documents for continuing work on the generated project."""
    cursorrules: str = Field(..., min_length=100)
    start_prompt: str = Field(..., min_length=100)


# ---------------------------------------------------------------------------
# Pipeline output
# ---------------------------------------------------------------------------

class GenerateProjectResult(_WireModel):
    """Complete artifact bundle produced by a successful run."""
    intent: ProjectIntent
    architecture: ProjectArchitecture
    code: GeneratedCode
    context: CursorContext
