"""Tool JSON schemas for the chat-completions function-calling interface.

``AGENT_TOOLS`` is the list passed as ``tools=`` on every reasoning turn. Each
entry follows the OpenAI ``{"type": "function", "function": {...}}`` structure:
- ``name``: tool identifier
- ``description``: natural-language description for the model
- ``parameters``: JSON Schema object describing the arguments

The seven tools cover the ad-research surface: planning, Meta Ads Library
scraping, video download, vision analysis, web search, report synthesis, and the
terminal ``finish`` call.
"""

PLANNING_TOOL = "think_and_plan"
TERMINAL_TOOL = "finish"


def _function(name: str, description: str, properties: dict, required: list[str]) -> dict:  # type: ignore[type-arg]
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


_STRING_LIST = {"type": "array", "items": {"type": "string"}}

AGENT_TOOLS: list[dict] = [  # type: ignore[type-arg]
    _function(
        PLANNING_TOOL,
        (
            "FIRST STEP - Always call this to analyze the task, understand what the user "
            "wants, and create a step-by-step execution plan."
        ),
        {
            "task_understanding": {
                "type": "string",
                "description": "Your understanding of what the user is asking for.",
            },
            "reasoning": {
                "type": "string",
                "description": "Your reasoning about how to approach this task.",
            },
            "execution_plan": {
                "type": "array",
                "description": "Ordered list of steps to execute.",
                "items": {
                    "type": "object",
                    "properties": {
                        "step": {"type": "number"},
                        "action": {"type": "string"},
                        "tool": {"type": "string"},
                        "expected_output": {"type": "string"},
                    },
                    "required": ["step", "action", "tool"],
                },
            },
            "success_criteria": {
                "type": "string",
                "description": "How will you know when the task is complete?",
            },
        },
        ["task_understanding", "reasoning", "execution_plan", "success_criteria"],
    ),
    _function(
        "scrape_competitor_ads",
        (
            "Scrape Meta Ads Library to find competitor video ads. Returns ad data "
            "including video URLs, ad copy, thumbnails, and CTAs."
        ),
        {
            "brand_name": {"type": "string", "description": "The brand/company name to search for."},
            "max_ads": {"type": "number", "description": "Maximum number of ads to retrieve (default: 10)."},
        },
        ["brand_name"],
    ),
    _function(
        "download_videos",
        "Download video files from URLs to storage for analysis.",
        {"video_urls": {**_STRING_LIST, "description": "Array of video URLs to download."}},
        ["video_urls"],
    ),
    _function(
        "analyze_visuals",
        (
            "Analyze ad images/screenshots using AI vision. Extracts hooks, messaging, "
            "visual elements, and provides effectiveness scores."
        ),
        {
            "image_urls": {**_STRING_LIST, "description": "URLs of images/screenshots to analyze."},
            "ad_copy": {"type": "string", "description": "The ad copy/text to analyze alongside visuals."},
            "brand_context": {"type": "string", "description": "Additional context about the brand."},
        },
        ["image_urls"],
    ),
    _function(
        "search_web",
        "Search the web for information about brands, competitors, market trends, or any relevant topic.",
        {
            "query": {"type": "string", "description": "The search query."},
            "num_results": {"type": "number", "description": "Number of results (default: 5)."},
        },
        ["query"],
    ),
    _function(
        "synthesize_report",
        "Synthesize all collected data into a comprehensive analysis report with insights and recommendations.",
        {
            "brand_name": {"type": "string"},
            "ads_analyzed": {"type": "number"},
            "key_findings": _STRING_LIST,
            "hook_patterns": _STRING_LIST,
            "script_insights": _STRING_LIST,
            "recommendations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "impact": {"type": "string"},
                        "priority": {"type": "string"},
                    },
                },
            },
        },
        ["brand_name", "key_findings", "recommendations"],
    ),
    _function(
        TERMINAL_TOOL,
        "Call this when the task is complete. Provides a final summary to the user.",
        {
            "summary": {"type": "string", "description": "Brief summary of what was accomplished."},
            "results_delivered": {"type": "boolean", "description": "Whether results were successfully delivered."},
            "next_steps": {**_STRING_LIST, "description": "Suggested next steps for the user."},
        },
        ["summary", "results_delivered"],
    ),
]

TOOL_NAMES: frozenset[str] = frozenset(t["function"]["name"] for t in AGENT_TOOLS)

TOOL_ICONS: dict[str, str] = {
    "think_and_plan": "🧠",
    "scrape_competitor_ads": "🔥",
    "download_videos": "⬇️",
    "analyze_visuals": "👁️",
    "search_web": "🔎",
    "synthesize_report": "📊",
    "finish": "✅",
}
DEFAULT_TOOL_ICON = "⚙️"


def tool_icon(tool_name: str) -> str:
    return TOOL_ICONS.get(tool_name, DEFAULT_TOOL_ICON)


def tool_action_message(tool_name: str, args: dict) -> str:  # type: ignore[type-arg]
    """Human-readable one-liner shown in the UI while a tool runs."""
    if tool_name == "think_and_plan":
        return "Analyzing task and creating execution plan..."
    if tool_name == "scrape_competitor_ads":
        return f'Searching for "{args.get("brand_name", "")}" ads on Meta Ads Library...'
    if tool_name == "download_videos":
        return f"Downloading {len(args.get('video_urls') or [])} videos for analysis..."
    if tool_name == "analyze_visuals":
        return f"Analyzing {len(args.get('image_urls') or [])} ad creatives with AI vision..."
    if tool_name == "search_web":
        return f'Searching: "{args.get("query", "")}"...'
    if tool_name == "synthesize_report":
        return f"Creating comprehensive report for {args.get('brand_name', '')}..."
    if tool_name == "finish":
        return "Completing task and delivering results..."
    return f"Executing {tool_name}..."
