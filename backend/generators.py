"""
Content generators for Forest
Branch design, branch node generation and task generation, either from the
intelligence provider or from deterministic fallbacks
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

import jsonschema
import openai
from pydantic import ValidationError

from backend.errors import ProviderUnavailable
from backend.models import (
    FrontierNode, StrategicBranch, TaskGraph, ProjectConfig, unique_node_id
)
from utils.config import INTELLIGENCE_MAX_RETRIES, INTELLIGENCE_RETRY_DELAY
from utils.providers import (
    ProviderError, create_client, get_model_for_task, get_api_call_params, is_provider_configured
)

logger = logging.getLogger(__name__)

BRANCH_DESIGN = "branch-design"
BRANCH_NODE_GENERATION = "branch-node-generation"
TASK_GENERATION = "task-generation"

GENERIC_BRANCHES = [
    {"id": "exploration", "title": "Domain Exploration", "priority": "high"},
    {"id": "fundamentals", "title": "Core Fundamentals", "priority": "high"},
    {"id": "application", "title": "Practical Application", "priority": "medium"},
    {"id": "mastery", "title": "Advanced Mastery", "priority": "low"},
]

BRANCH_SCHEMA = {
    "type": "object",
    "required": ["id", "title"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "priority": {"type": "string"},
    },
}

NODE_SCHEMA = {
    "type": "object",
    "required": ["id", "title"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "branch": {"type": "string"},
        "difficulty": {"type": "integer", "minimum": 1, "maximum": 5},
        "duration": {"type": ["string", "integer"]},
        "prerequisites": {"type": "array", "items": {"type": "string"}},
        "priority": {"type": "number"},
        "learning_outcome": {"type": "string"},
    },
}

# Envelope key and item schema per request type
RESPONSE_SHAPES = {
    BRANCH_DESIGN: ("branches", BRANCH_SCHEMA),
    BRANCH_NODE_GENERATION: ("nodes", NODE_SCHEMA),
    TASK_GENERATION: ("tasks", NODE_SCHEMA),
}

INTELLIGENCE_SYSTEM_PROMPT = """You design personal learning plans made of strategic branches and small, concrete tasks.
Answer with a single JSON object and nothing else.

Request type: {request_type}
{instructions}"""

REQUEST_INSTRUCTIONS = {
    BRANCH_DESIGN: """Return {"branches": [...]} with 3 to 6 branches toward the goal.
Each branch: {"id": short_snake_case, "title": str, "description": str, "priority": "high"|"medium"|"low"}.
Give each focus area its own high-priority branch.""",
    BRANCH_NODE_GENERATION: """Return {"nodes": [...]} with 2 to 4 tasks for the given branch, easiest first.
Each task: {"id": str unique and prefixed with the branch id, "title": str, "description": str,
"branch": branch id, "difficulty": 1-5, "duration": "<n> minutes", "prerequisites": [ids of earlier tasks],
"priority": number around 200, "learning_outcome": str}.
Do not repeat completed tasks.""",
    TASK_GENERATION: """Return {"tasks": [...]} with 2 to 4 new tasks that address the analysis.
Each task: {"id": str not used by any existing task, "title": str, "description": str, "branch": str,
"difficulty": 1-5, "duration": "<n> minutes", "prerequisites": [], "priority": number 200-250,
"learning_outcome": str}.""",
}


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(text).lower()).strip("_") or "focus"


def retry_api_call(func, *args, max_retries=INTELLIGENCE_MAX_RETRIES, delay=INTELLIGENCE_RETRY_DELAY, **kwargs):
    """Retry API calls with exponential backoff; timeouts are not retried"""
    last_error = None
    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except openai.APITimeoutError:
            raise
        except (openai.RateLimitError, openai.APIError) as e:
            last_error = e
            if attempt < max_retries:
                wait_time = delay * (2 ** attempt)
                logger.warning(f"{type(e).__name__} from provider, retrying in {wait_time} seconds...")
                time.sleep(wait_time)
    logger.error(f"Failed after {max_retries + 1} attempts. Last error: {last_error}")
    raise last_error


def extract_json_from_markdown(content: str) -> str:
    """JSON body of a ```json fenced block, or the content unchanged"""
    match = re.search(r"```(?:json)?\s*\n(.*?)\n\s*```", content, re.DOTALL)
    if match and match.group(1).strip().startswith("{"):
        return match.group(1)
    return content


class ContentGenerator(ABC):
    """Produces the generative content of a plan"""

    @abstractmethod
    def design_branches(self, goal: str, path_name: str, focus_areas: List[str],
                        knowledge_level: int) -> List[StrategicBranch]:
        ...

    @abstractmethod
    def generate_branch_nodes(self, branch: StrategicBranch, interests: List[str], learning_style: str,
                              knowledge_level: int, completed_ids: List[str],
                              start_node_id: int) -> List[FrontierNode]:
        ...

    @abstractmethod
    def generate_tasks(self, config: ProjectConfig, graph: TaskGraph, analysis: Dict[str, Any]) -> List[FrontierNode]:
        ...


class FallbackContentGenerator(ContentGenerator):
    """Deterministic content; always available"""

    def design_branches(self, goal, path_name, focus_areas, knowledge_level):
        branches = []
        seen = set()
        for area in focus_areas or []:
            branch_id = slugify(area)
            if branch_id in seen:
                continue
            seen.add(branch_id)
            branches.append(StrategicBranch(
                id=branch_id,
                title=f"Focus: {area}",
                description=f"Dedicated work on {area}",
                priority="high",
            ))

        for generic in GENERIC_BRANCHES:
            if generic["id"] not in seen:
                seen.add(generic["id"])
                branches.append(StrategicBranch(**generic))
        return branches

    def generate_branch_nodes(self, branch, interests, learning_style, knowledge_level,
                              completed_ids, start_node_id):
        titles = [
            f"Understand the fundamentals of {branch.title}",
            f"Apply {branch.title} in a real-life scenario",
            f"Reflect on progress in {branch.title}",
        ]
        nodes = []
        for idx, title in enumerate(titles):
            node_id = f"{branch.id}_{start_node_id + idx}"
            nodes.append(FrontierNode(
                id=node_id,
                title=title,
                description=title,
                branch=branch.id,
                difficulty=idx + 1,
                duration=f"{15 + idx * 15} minutes",
                prerequisites=[] if idx == 0 else [f"{branch.id}_{start_node_id + idx - 1}"],
                learning_outcome=f"Gain competency: {title}",
                priority=200 - idx * 10,
            ))
        return nodes

    def generate_tasks(self, config, graph, analysis):
        taken = graph.node_ids()
        number = len(graph.frontier_nodes) + 1
        explore_id, number = unique_node_id("explore_fallback", number, taken)
        practice_id, number = unique_node_id("practice_fallback", number, taken)
        return [
            FrontierNode(
                id=explore_id,
                title="Explore: New Possibility",
                description="Discover new aspects of your learning domain",
                difficulty=1,
                duration="20 minutes",
                branch="exploration",
                priority=230,
                generated=True,
            ),
            FrontierNode(
                id=practice_id,
                title="Practice: Core Skill",
                description="Reinforce fundamental skills",
                difficulty=3,
                duration="30 minutes",
                branch="practice",
                priority=220,
                generated=True,
            ),
        ]


class RemoteContentGenerator(ContentGenerator):
    """
    Content from the intelligence provider through an OpenAI-compatible chat API.

    Every failure (configuration, transport, timeout, malformed or off-schema
    answer) is raised as ProviderUnavailable.
    """

    def __init__(self, client=None, provider: Optional[str] = None):
        self._client = client
        self.provider = provider

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = create_client(self.provider)
            except ProviderError as e:
                raise ProviderUnavailable(f"Provider configuration error: {e}")
        return self._client

    def request_intelligence(self, request_type: str, payload: Dict[str, Any]) -> List[Dict]:
        """Send one request and return the validated list of items it asked for"""
        items_key, item_schema = RESPONSE_SHAPES[request_type]
        messages = [
            {"role": "system", "content": INTELLIGENCE_SYSTEM_PROMPT.format(
                request_type=request_type, instructions=REQUEST_INSTRUCTIONS[request_type])},
            {"role": "user", "content": json.dumps(payload, default=str)},
        ]

        try:
            model = get_model_for_task("chat", self.provider)

            def make_intelligence_call():
                params = get_api_call_params(
                    model=model,
                    messages=messages,
                    temperature=0.4,
                    response_format={"type": "json_object"},
                )
                logger.info(f"[API CALL] Reason: {request_type} | Model: {model}")
                return self.client.chat.completions.create(**params)

            response = retry_api_call(make_intelligence_call)
        except (openai.OpenAIError, ProviderError) as e:
            raise ProviderUnavailable(f"{request_type} request failed: {type(e).__name__}: {e}")

        usage = getattr(response, "usage", None)
        logger.info(f"[API RETURN] {request_type} complete | Model: {model} | "
                    f"Tokens: {getattr(usage, 'total_tokens', 'n/a')}")

        if not response.choices or not response.choices[0].message.content:
            raise ProviderUnavailable(f"{request_type} returned an empty response")

        content = extract_json_from_markdown(response.choices[0].message.content)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProviderUnavailable(f"{request_type} returned invalid JSON: {e}")

        items = None
        if isinstance(data, dict):
            items = data.get(items_key)
            if items is None and isinstance(data.get("data"), dict):
                items = data["data"].get(items_key)

        try:
            jsonschema.validate(items, {"type": "array", "minItems": 1, "items": item_schema})
        except jsonschema.ValidationError as e:
            raise ProviderUnavailable(f"{request_type} response off-schema: {e.message}")

        return items

    def design_branches(self, goal, path_name, focus_areas, knowledge_level):
        items = self.request_intelligence(BRANCH_DESIGN, {
            "goal": goal,
            "path_name": path_name,
            "focus_areas": focus_areas,
            "knowledge_level": knowledge_level,
        })
        return self._to_models(StrategicBranch, items)

    def generate_branch_nodes(self, branch, interests, learning_style, knowledge_level,
                              completed_ids, start_node_id):
        items = self.request_intelligence(BRANCH_NODE_GENERATION, {
            "branch": branch.model_dump(),
            "interests": interests,
            "learning_style": learning_style,
            "knowledge_level": knowledge_level,
            "completed_tasks": completed_ids,
            "start_node_id": start_node_id,
        })
        for item in items:
            item.setdefault("branch", branch.id)
        return self._to_models(FrontierNode, items)

    def generate_tasks(self, config, graph, analysis):
        items = self.request_intelligence(TASK_GENERATION, {
            "config": config.model_dump(mode="json"),
            "existing_tasks": [
                {"id": n.id, "title": n.title, "completed": n.completed} for n in graph.frontier_nodes
            ],
            "analysis": analysis,
        })
        for item in items:
            item.setdefault("generated", True)
        return self._to_models(FrontierNode, items)

    @staticmethod
    def _to_models(model, items):
        try:
            return [model.model_validate(item) for item in items]
        except ValidationError as e:
            raise ProviderUnavailable(f"Provider content could not be converted: {e}")


class ResilientContentGenerator(ContentGenerator):
    """Try the primary generator; on ProviderUnavailable use the fallback"""

    def __init__(self, primary: ContentGenerator, fallback: ContentGenerator):
        self.primary = primary
        self.fallback = fallback

    def _attempt(self, operation: str, *args, **kwargs):
        try:
            return getattr(self.primary, operation)(*args, **kwargs)
        except ProviderUnavailable as e:
            logger.warning(f"[{operation}] {e}; using fallback content")
            return getattr(self.fallback, operation)(*args, **kwargs)

    def design_branches(self, *args, **kwargs):
        return self._attempt("design_branches", *args, **kwargs)

    def generate_branch_nodes(self, *args, **kwargs):
        return self._attempt("generate_branch_nodes", *args, **kwargs)

    def generate_tasks(self, *args, **kwargs):
        return self._attempt("generate_tasks", *args, **kwargs)


def create_content_generator() -> ContentGenerator:
    """Provider-backed generator with fallback when a provider is configured, else the fallback alone"""
    if is_provider_configured():
        return ResilientContentGenerator(RemoteContentGenerator(), FallbackContentGenerator())
    logger.info("[create_content_generator] No intelligence provider configured; using fallback content")
    return FallbackContentGenerator()
