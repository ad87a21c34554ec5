"""
Core modules for alfred.
"""

from .models import (
    ModuleInfo,
    InstallRecord,
    InstallStatus,
    ExposureProfile,
    FirewallState,
    GlobalSettings,
)
from .config import ConfigStore
from .renderer import RenderContext, TemplateRenderer, render, find_unresolved
from .registry import ModuleRegistry
from .state import InstallStateStore, FirewallStateStore
from .settings import Settings, load_settings
from .resolver import Mode, Decision, RunOutcome, ScriptedPrompt
from .writer import ArtifactBuilder, ArtifactWriter
from .engine import Orchestrator, BatchReport
from .firewall import FirewallStateMachine
from .validator import Validator

__all__ = [
    "ModuleInfo",
    "InstallRecord",
    "InstallStatus",
    "ExposureProfile",
    "FirewallState",
    "GlobalSettings",
    "ConfigStore",
    "RenderContext",
    "TemplateRenderer",
    "render",
    "find_unresolved",
    "ModuleRegistry",
    "InstallStateStore",
    "FirewallStateStore",
    "Settings",
    "load_settings",
    "Mode",
    "Decision",
    "RunOutcome",
    "ScriptedPrompt",
    "ArtifactBuilder",
    "ArtifactWriter",
    "Orchestrator",
    "BatchReport",
    "FirewallStateMachine",
    "Validator",
]
