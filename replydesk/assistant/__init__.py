"""Grounding, generation, transcription and speech adapters."""

from .completion import ChatCompletionAdapter, CompletionAdapter
from .context import ChatTurn, ContextAssembler, GroundingContext, build_history, build_turns
from .prompts import StyleDirectiveStore, render_system_prompt
from .providers import ProviderCredentials, ProviderRegistry
from .responses import ResponseParameterStore
from .speech import ElevenLabsSynthesisAdapter, LocalAudioStore, SynthesisAdapter
from .transcription import (
    MockTranscriptionAdapter,
    TranscriptionAdapter,
    WhisperTranscriptionAdapter,
)

__all__ = [
    "ChatCompletionAdapter",
    "ChatTurn",
    "CompletionAdapter",
    "ContextAssembler",
    "ElevenLabsSynthesisAdapter",
    "GroundingContext",
    "LocalAudioStore",
    "MockTranscriptionAdapter",
    "ProviderCredentials",
    "ProviderRegistry",
    "ResponseParameterStore",
    "StyleDirectiveStore",
    "SynthesisAdapter",
    "TranscriptionAdapter",
    "WhisperTranscriptionAdapter",
    "build_history",
    "build_turns",
    "render_system_prompt",
]
