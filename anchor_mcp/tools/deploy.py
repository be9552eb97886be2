from pydantic import BaseModel, ConfigDict, Field

from anchor_mcp.context import ServerContext
from anchor_mcp.sandbox.jobs import Cluster
from anchor_mcp.sandbox.report import JobReport


class DeployAnchorProgramArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    project_path: str = Field(alias="projectPath", description="Path to the Anchor workspace (contains Anchor.toml)")
    cluster: Cluster = Field(default=Cluster.DEVNET, description="Cluster to deploy to")


async def execute(context: ServerContext, args: DeployAnchorProgramArgs) -> JobReport:
    return await context.runner.deploy(args.project_path, args.cluster)


args_model = DeployAnchorProgramArgs

# MCP Tool Definition
mcp_tool_def = {
    "name": "deployAnchorProgram",
    "description": (
        "Run `anchor deploy` against the chosen cluster and report the deployed program id "
        "parsed from the CLI output."
    ),
    "inputSchema": DeployAnchorProgramArgs.model_json_schema(by_alias=True),
}
