"""Repair Agent: asks the model to fix a blueprint payload that failed validation."""

import json
from typing import Optional, Protocol

import structlog

from buildguard.agents.base import BaseAgent
from buildguard.config import RepairConfig, Settings
from buildguard.exceptions import ParseError
from buildguard.models.analysis import BlueprintKind, RouteDecision
from buildguard.models.envelope import Envelope

logger = structlog.get_logger()


class BlueprintRepairer(Protocol):
    """Anything that can turn a failing envelope plus its errors into a new payload.

    Implementations raise GenerationTimeoutError or ParseError when they cannot.
    """

    async def repair(
        self,
        envelope: Envelope,
        errors: list[str],
        intent: Optional[RouteDecision] = None,
        attempt: int = 0,
    ) -> dict:
        ...


REPAIR_SYSTEM_PROMPT = """You are an expert Minecraft build engineer. You repair build blueprints
that failed automated validation.

A blueprint is a JSON payload. ops_script payloads hold a palette and an ordered list of
operations over a 3D integer grid (x, z horizontal, y up, y=0 is the ground). voxel_sparse
payloads hold a palette and a list of individual voxels.

Rules:
1. Fix every listed error without changing what the build is
2. Every coordinate is an integer triple {"x", "y", "z"} inside the stated bounds
3. Every block name is a real Minecraft block id; $tokens must exist in the palette
4. Roofs sit directly on walls and every part of the build connects to the ground
5. Every WorldEdit operation (we_*) carries a vanilla "fallback" operation

Respond with ONLY the repaired payload JSON object."""

OPS_SCRIPT_SHAPE = """{
  "palette": { "primary": "stone_bricks", ... },
  "steps": [
    { "op": "fill", "from": {...}, "to": {...}, "block": "$primary" },
    ...
  ]
}"""

VOXEL_SPARSE_SHAPE = """{
  "palette": { "0": "stone", "1": "cobblestone", ... },
  "voxels": [
    { "x": 0, "y": 0, "z": 0, "block": 0 },
    ...
  ]
}"""


class RepairAgent(BaseAgent):
    """Model-backed BlueprintRepairer."""

    def __init__(self, config: Optional[RepairConfig] = None, settings: Optional[Settings] = None):
        self.config = config or RepairConfig()
        super().__init__(
            name="repairer",
            role="Blueprint Repairer",
            temperature=self.config.llm_temperature,
            json_mode=True,
            settings=settings,
        )

    def get_system_prompt(self) -> str:
        return REPAIR_SYSTEM_PROMPT

    def build_user_message(self, state: dict) -> str:
        envelope: Envelope = state["envelope"]
        errors: list[str] = state.get("errors", [])
        intent: Optional[RouteDecision] = state.get("intent")
        attempt: int = state.get("attempt", 0)
        kind = BlueprintKind(envelope.kind).value

        payload = json.dumps(envelope.payload, indent=2)
        if len(payload) > self.config.max_payload_size:
            payload = payload[:self.config.max_payload_size] + "\n... (truncated)"

        if intent:
            intent_text = json.dumps(
                {"buildType": intent.build_type, "style": intent.style, "passes": list(intent.passes)},
                indent=2,
            )
        else:
            intent_text = "Not provided"

        tags = envelope.tags.model_dump(mode="json", by_alias=True)
        bounds = envelope.bounds.local.model_dump(mode="json")
        error_lines = "\n".join(f"{i + 1}. {e}" for i, e in enumerate(errors)) or "None reported"

        sections = [
            "## Original Intent",
            intent_text,
            "",
            "## Envelope Info",
            f"- Version: {envelope.blueprint_version}",
            f"- Kind: {kind}",
            f"- Tags: {json.dumps(tags)}",
            f"- Bounds: {json.dumps(bounds)}",
            "",
            f"## Current Payload ({kind})",
            payload,
            "",
            "## Validation Errors",
            error_lines,
            "",
            "## Instructions",
            "1. Fix the specific errors listed above",
            "2. Maintain the original design intent",
            f"3. Keep the same structure ({kind} payload format)",
            "4. Ensure all block names are valid Minecraft blocks",
            "5. Ensure all coordinates are within bounds",
        ]

        if attempt > 0:
            sections += [
                "",
                "## Previous Attempt Failed",
                f"This is attempt {attempt + 1}. The previous repair attempt also failed.",
                "Focus on:",
                "- Being more conservative with dimensions",
                "- Using simpler operations",
                "- Ensuring basic structural requirements are met",
            ]

        shape = OPS_SCRIPT_SHAPE if kind == BlueprintKind.OPS_SCRIPT.value else VOXEL_SPARSE_SHAPE
        sections += [
            "",
            "Return ONLY the repaired payload JSON (not the full envelope), with no markdown formatting.",
            f"For {kind}:",
            shape,
        ]
        return "\n".join(sections)

    def parse_response(self, raw_response: str) -> dict:
        parsed = self._safe_parse_json(raw_response)
        if not isinstance(parsed, dict):
            raise ParseError("Repair response is not a JSON object", raw=raw_response)

        # Models sometimes echo the whole envelope back.
        if isinstance(parsed.get("payload"), dict):
            parsed = parsed["payload"]
        return parsed

    async def repair(
        self,
        envelope: Envelope,
        errors: list[str],
        intent: Optional[RouteDecision] = None,
        attempt: int = 0,
    ) -> dict:
        user_message = self.build_user_message(
            {"envelope": envelope, "errors": errors, "intent": intent, "attempt": attempt}
        )
        llm_result = await self._call_llm(self.get_system_prompt(), user_message)
        payload = self.parse_response(llm_result["content"])
        logger.info("repair_payload_received", attempt=attempt + 1, keys=sorted(payload))
        return payload
