from dataclasses import dataclass
from typing import Dict, Tuple

from anchor_mcp.config import AnchorMCPConfig

from .compiler import CompilerAdapter, EsbuildCompiler, TypeScriptCompiler
from .executor import ProcessExecutor
from .synthesizer import ANCHOR_PREAMBLE, Preamble


class ToolchainError(ValueError):
    """Raised for an unknown compiler backend."""
    pass


@dataclass(frozen=True)
class Toolchain:
    """Everything needed to turn test source text into a running process."""
    source_suffix: str
    output_suffix: str
    interpreter: str
    compiler: CompilerAdapter
    preamble: Preamble = ANCHOR_PREAMBLE


# Singleton cache: (compiler, node, esbuild, max_output, kill_grace) -> instance
_TOOLCHAIN_CACHE: Dict[Tuple, Toolchain] = {}


def create_executor(config: AnchorMCPConfig) -> ProcessExecutor:
    return ProcessExecutor(
        max_output_bytes=config.MAX_OUTPUT_KB * 1024,
        kill_grace=config.KILL_GRACE_SEC,
    )


def create_toolchain(config: AnchorMCPConfig) -> Toolchain:
    """
    Build (or fetch the cached) TypeScript toolchain described by ``config``.

    Raises:
        ToolchainError: If ``config.COMPILER`` names an unknown backend.
    """
    backend = config.COMPILER.lower()
    cache_key = (backend, config.NODE_BINARY, config.ESBUILD_BINARY, config.MAX_OUTPUT_KB, config.KILL_GRACE_SEC)
    if cache_key in _TOOLCHAIN_CACHE:
        return _TOOLCHAIN_CACHE[cache_key]

    executor = create_executor(config)
    if backend == "typescript":
        compiler = TypeScriptCompiler(executor, node_binary=config.NODE_BINARY)
    elif backend == "esbuild":
        compiler = EsbuildCompiler(executor, esbuild_binary=config.ESBUILD_BINARY)
    else:
        raise ToolchainError(f"Unknown compiler backend: {config.COMPILER}")

    toolchain = Toolchain(
        source_suffix=".ts",
        output_suffix=".js",
        interpreter=config.NODE_BINARY,
        compiler=compiler,
    )
    _TOOLCHAIN_CACHE[cache_key] = toolchain
    return toolchain
