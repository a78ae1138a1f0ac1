"""Out-of-tree Linux kernel module builds with kbuild-compatible modpost linking."""

from .arch import ArchProfile, resolve_arch_profile
from .builder import KernelModuleBuilder
from .config import BuildConfig
from .configure import configure_target
from .depend import ChangeDetector
from .errors import (
    CompileError,
    ConfigurationError,
    ErrorCode,
    IncompatibleRuleError,
    KmodError,
    LinkStageError,
    MissingToolError,
    UnsupportedArchitectureError,
    UnsupportedToolchainError,
)
from .link import LinkStage, ModuleLinkArtifacts, ModuleLinkPipeline
from .models import KernelHeaderSdk, ModuleArtifact, ModuleBuildTarget, PackageDescriptor
from .observability import StructuredLogger
from .probe import CompilerProbe
from .sdk import resolve_linux_headers_sdk

__all__ = [
    "ArchProfile",
    "BuildConfig",
    "ChangeDetector",
    "CompileError",
    "CompilerProbe",
    "ConfigurationError",
    "ErrorCode",
    "IncompatibleRuleError",
    "KernelHeaderSdk",
    "KernelModuleBuilder",
    "KmodError",
    "LinkStage",
    "LinkStageError",
    "MissingToolError",
    "ModuleArtifact",
    "ModuleBuildTarget",
    "ModuleLinkArtifacts",
    "ModuleLinkPipeline",
    "PackageDescriptor",
    "StructuredLogger",
    "UnsupportedArchitectureError",
    "UnsupportedToolchainError",
    "configure_target",
    "resolve_arch_profile",
    "resolve_linux_headers_sdk",
]
