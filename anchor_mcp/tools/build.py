from pydantic import BaseModel, ConfigDict, Field

from anchor_mcp.context import ServerContext
from anchor_mcp.sandbox.report import JobReport


class BuildAnchorProgramArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    project_path: str = Field(alias="projectPath", description="Path to the Anchor workspace (contains Anchor.toml)")


async def execute(context: ServerContext, args: BuildAnchorProgramArgs) -> JobReport:
    return await context.runner.build(args.project_path)


args_model = BuildAnchorProgramArgs

# MCP Tool Definition
mcp_tool_def = {
    "name": "buildAnchorProgram",
    "description": "Run `anchor build` in an Anchor workspace and report the compiler output.",
    "inputSchema": BuildAnchorProgramArgs.model_json_schema(by_alias=True),
}
