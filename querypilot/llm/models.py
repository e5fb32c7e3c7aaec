"""
LLM Request and Response Models

Pydantic models for LLM provider interactions.
Provider-agnostic models that work across OpenAI, Anthropic, Google, etc.,
including the function-calling round trip (declaration, call, result).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

FinishReason = Literal["stop", "length", "content_filter", "tool_calls", "error"]


class LLMToolDeclaration(BaseModel):
    """A function the model may call, described with a JSON schema."""

    name: str = Field(..., description="Function name", min_length=1)
    description: str = Field(..., description="What the function does")
    parameters: Dict[str, Any] = Field(
        ...,
        description="JSON schema (type=object) describing the arguments"
    )


class LLMToolCall(BaseModel):
    """A function call issued by the model."""

    id: Optional[str] = Field(
        None,
        description="Provider call id (OpenAI/Anthropic); Gemini may omit it"
    )
    name: str = Field(..., description="Called function name")
    arguments: Dict[str, Any] = Field(
        default_factory=dict,
        description="Decoded call arguments"
    )


class LLMToolResult(BaseModel):
    """The result of one tool call, sent back to the model."""

    call_id: Optional[str] = Field(None, description="Id of the call being answered")
    name: str = Field(..., description="Function name")
    response: Dict[str, Any] = Field(..., description="JSON-serialisable payload")


class LLMMessage(BaseModel):
    """Single message in an LLM conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(
        ...,
        description="Message role"
    )
    content: str = Field(
        default="",
        description="Message content"
    )
    tool_calls: List[LLMToolCall] = Field(
        default_factory=list,
        description="Calls requested by the assistant in this turn"
    )
    tool_results: List[LLMToolResult] = Field(
        default_factory=list,
        description="Results answering a previous assistant tool-call turn"
    )

    @model_validator(mode="after")
    def check_payload(self) -> "LLMMessage":
        if self.role == "tool":
            if not self.tool_results:
                raise ValueError("tool messages must carry tool_results")
        elif self.role == "assistant":
            if not self.content and not self.tool_calls:
                raise ValueError("assistant messages need content or tool_calls")
        elif not self.content:
            raise ValueError(f"{self.role} messages need content")
        return self


class LLMRequest(BaseModel):
    """Request to an LLM provider."""

    messages: List[LLMMessage] = Field(
        ...,
        description="Conversation messages",
        min_length=1
    )
    tools: List[LLMToolDeclaration] = Field(
        default_factory=list,
        description="Functions the model may call"
    )
    temperature: Optional[float] = Field(
        None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (overrides default)"
    )
    max_tokens: Optional[int] = Field(
        None,
        gt=0,
        description="Maximum tokens to generate (overrides default)"
    )
    model: Optional[str] = Field(
        None,
        description="Specific model to use (overrides default)"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional provider-specific parameters"
    )

    @property
    def system_prompt(self) -> Optional[str]:
        """Concatenated system messages, for providers that take them separately."""
        parts = [msg.content for msg in self.messages if msg.role == "system"]
        return "\n\n".join(parts) if parts else None


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = Field(
        default=0,
        ge=0,
        description="Number of tokens in the prompt"
    )
    completion_tokens: int = Field(
        default=0,
        ge=0,
        description="Number of tokens in the completion"
    )
    total_tokens: int = Field(
        default=0,
        ge=0,
        description="Total tokens used"
    )


class LLMResponse(BaseModel):
    """Response from an LLM provider."""

    content: str = Field(
        default="",
        description="Generated text content"
    )
    tool_calls: List[LLMToolCall] = Field(
        default_factory=list,
        description="Function calls requested by the model"
    )
    model: str = Field(
        ...,
        description="Model that generated the response"
    )
    usage: LLMUsage = Field(
        default_factory=LLMUsage,
        description="Token usage information"
    )
    finish_reason: FinishReason = Field(
        default="stop",
        description="Reason the generation stopped"
    )
    provider: str = Field(
        ...,
        description="Provider that handled the request (openai, anthropic, etc.)"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional provider-specific response data"
    )
