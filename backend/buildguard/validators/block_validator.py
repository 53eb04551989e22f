"""Block Validator: every palette entry and step block must be a real block id.

The block registry itself lives outside this package. Callers inject a
predicate (block name -> bool); the default only checks the id shape.
"""

import re
from typing import Callable, Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator

# namespace-free id with optional block state, e.g. oak_stairs[facing=north]
BLOCK_ID_PATTERN = re.compile(r"^[a-z0-9_]+(\[.*\])?$")


def is_well_formed_block(name: str) -> bool:
    return bool(BLOCK_ID_PATTERN.match(name))


class BlockValidator(BaseValidator):
    """Reports block names the injected registry does not know."""

    def __init__(self, block_checker: Optional[Callable[[str], bool]] = None):
        self.block_checker = block_checker or is_well_formed_block

    @property
    def name(self) -> str:
        return "BlockValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        invalid: list[str] = []
        first_step: dict[str, int] = {}

        for block in blueprint.palette_blocks():
            if block and not self.block_checker(block) and block not in invalid:
                invalid.append(block)

        for i, step in enumerate(blueprint.steps):
            for raw in (step.block, step.from_block, step.to_block):
                block = blueprint.resolve_block(raw)
                if not block or block.startswith("$"):
                    continue  # placeholders are reported separately
                if not self.block_checker(block) and block not in invalid:
                    invalid.append(block)
                    first_step[block] = i

        if not invalid:
            return []

        return [self._issue(
            IssueCode.PARAM_INVALID_BLOCK, Severity.ERROR,
            f"Invalid Minecraft blocks: {', '.join(invalid)}",
            step=first_step.get(invalid[0]),
            field="block",
            suggestion="Use vanilla block ids such as 'stone_bricks' or 'oak_planks'",
            blocks=invalid,
        )]
