from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_wallet_path() -> str:
    return str(Path.home() / ".config" / "solana" / "id.json")


class AnchorMCPConfig(BaseSettings):
    """
    Anchor MCP server configuration.
    Priority: Environment Variables (ANCHOR_MCP_*) > .env file > Defaults.
    """

    # --- Server ---
    SERVER_NAME: str = Field(default="solana-anchor", description="Name reported in serverInfo")
    DEBUG: bool = Field(default=False, description="Enable debug logging")

    # --- Values handed to child processes as ANCHOR_PROVIDER_URL / ANCHOR_WALLET ---
    PROVIDER_URL: str = Field(
        default="https://api.devnet.solana.com",
        description="RPC endpoint exported to test scripts and the anchor CLI",
    )
    WALLET_PATH: str = Field(
        default_factory=_default_wallet_path,
        description="Keypair file exported to test scripts and the anchor CLI",
    )

    # --- Deadlines (seconds) ---
    TEST_TIMEOUT_SEC: float = Field(default=60.0, description="Deadline for a single test script run")
    BUILD_TIMEOUT_SEC: float = Field(default=300.0, description="Deadline for anchor build / deploy")
    COMPILE_TIMEOUT_SEC: float = Field(default=60.0, description="Deadline for transpiling a test script")
    KILL_GRACE_SEC: float = Field(
        default=2.0, description="Time between SIGTERM and SIGKILL when a deadline expires"
    )

    # --- Output ---
    MAX_OUTPUT_KB: int = Field(default=100, description="Per-stream cap on captured output")

    # --- Toolchain ---
    NODE_BINARY: str = Field(default="node", description="Interpreter for compiled test scripts")
    ANCHOR_BINARY: str = Field(default="anchor", description="Anchor CLI used for build and deploy")
    COMPILER: str = Field(default="typescript", description="Transpiler backend: typescript, esbuild")
    ESBUILD_BINARY: str = Field(default="esbuild", description="esbuild executable for COMPILER=esbuild")

    model_config = SettingsConfigDict(
        env_prefix="ANCHOR_MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def provider_env(self) -> dict:
        """Environment overlay handed to every child process."""
        return {
            "ANCHOR_PROVIDER_URL": self.PROVIDER_URL,
            "ANCHOR_WALLET": self.WALLET_PATH,
        }


# Singleton instance
settings = AnchorMCPConfig()
