"""Theme generation tool: writes a CSS stylesheet of design tokens."""

import asyncio
import re

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from design_agent.errors import ToolError
from design_agent.models.results import ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path, to_display_path
from design_agent.tools.utils import handle_tool_error, tool_success
from design_agent.tools.write import write_text_file
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_TOKENS = (
    "--background", "--foreground",
    "--primary", "--primary-foreground",
    "--secondary", "--muted", "--accent",
    "--destructive", "--border", "--input", "--ring",
    "--card", "--card-foreground", "--popover", "--popover-foreground",
    "--chart-1", "--chart-2", "--chart-3", "--chart-4", "--chart-5",
    "--font-sans", "--font-serif", "--font-mono",
    "--radius", "--spacing",
)  # fmt: skip

THEME_PROMPT = "Design a perfect theme that including color, font, spacing, shadow, etc."

CSS_SHEET_DESCRIPTION = """The full css sheet content, has to include below classes:
:root selector - Must contain CSS custom properties
CSS custom properties format - --variable-name: value;
Semicolon-terminated - Each property must end with ;
--background, --foreground (basic colors)
--primary, --primary-foreground (brand colors)
--secondary, --muted, --accent (semantic colors)
--destructive, --border, --input, --ring (UI elements)
--card, --popover + their foreground variants
--chart-1 through --chart-5 (data visualization)
--sidebar-* variables for navigation
--font-sans, --font-serif, --font-mono
--radius, --spacing
--shadow-* variables (xs, sm, md, lg, xl, etc.)
You can add more relevant ones based on use cases, but make sure to include all the above classes."""

_ROOT_BLOCK = re.compile(r":root\s*\{(?P<body>[^}]*)\}", re.DOTALL)
_CUSTOM_PROPERTY = re.compile(r"(--[\w-]+)\s*:\s*([^;]+);")


class ThemeInput(BaseModel):
    """Input schema for the generateTheme tool."""

    model_config = ConfigDict(populate_by_name=True)

    theme_name: str = Field(..., description="The name of the theme")
    reasoning_reference: str = Field(
        ..., description="Think through the theme design to make it coherent and what reference you used"
    )
    css_sheet: str = Field(
        ..., validation_alias=AliasChoices("css_sheet", "cssSheet"), description=CSS_SHEET_DESCRIPTION
    )
    css_file_path: str = Field(
        ...,
        validation_alias=AliasChoices("css_file_path", "cssFilePath"),
        description="Path to the css file to write to (relative to workspace root, or absolute path within workspace)",
    )
    create_dirs: bool = Field(default=True, description="Whether to create parent directories if they don't exist")


def extract_root_variables(css: str) -> dict[str, str]:
    """Collect the custom properties declared in ``:root`` blocks."""
    variables: dict[str, str] = {}
    for block in _ROOT_BLOCK.finditer(css):
        for name, value in _CUSTOM_PROPERTY.findall(block.group("body")):
            variables[name] = value.strip()
    return variables


async def theme_handler(params: ThemeInput, context: SandboxContext) -> ToolResult:
    """Write a theme stylesheet and report the tokens it defines."""
    try:
        path = resolve_workspace_path(params.css_file_path, context)
        await asyncio.to_thread(write_text_file, path, params.css_sheet, params.create_dirs)
        display_path = to_display_path(path, context)
        logger.info(f'[theme] Created theme "{params.theme_name}" at: {display_path}')

        variables = extract_root_variables(params.css_sheet)
        missing = [token for token in REQUIRED_TOKENS if token not in variables]
        if missing:
            logger.warning(f"[theme] Theme {params.theme_name!r} is missing tokens: {', '.join(missing)}")

        return tool_success(
            message=f'Theme "{params.theme_name}" saved successfully',
            file_path=display_path,
            absolute_path=str(path),
            theme_name=params.theme_name,
            reasoning_reference=params.reasoning_reference,
            css_sheet=params.css_sheet,
            variables=variables,
            missing_tokens=missing,
        )
    except ToolError as e:
        return handle_tool_error(e)
    except Exception as e:
        return handle_tool_error(e, "Theme tool execution")


def create_theme_tool() -> ToolDefinition:
    return ToolDefinition(
        name="generateTheme",
        description=THEME_PROMPT,
        input_model=ThemeInput,
        handler=theme_handler,
    )
