from dataclasses import dataclass

from anchor_mcp.config import AnchorMCPConfig
from anchor_mcp.sandbox.factory import create_executor, create_toolchain
from anchor_mcp.sandbox.pipeline import JobRunner


@dataclass(frozen=True)
class ServerContext:
    """Dependencies shared by every tool call. Built once at startup, never mutated."""
    settings: AnchorMCPConfig
    runner: JobRunner


def build_context(config: AnchorMCPConfig) -> ServerContext:
    runner = JobRunner(
        toolchain=create_toolchain(config),
        executor=create_executor(config),
        anchor_binary=config.ANCHOR_BINARY,
        env_overlay=config.provider_env(),
        test_deadline=config.TEST_TIMEOUT_SEC,
        build_deadline=config.BUILD_TIMEOUT_SEC,
        compile_deadline=config.COMPILE_TIMEOUT_SEC,
    )
    return ServerContext(settings=config, runner=runner)
