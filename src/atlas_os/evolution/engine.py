# src/atlas_os/evolution/engine.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..core.ports import LLMClient
from ..llm.errors import LLMError
from ..llm.parsing import extract_code_block, extract_integration_plan, extract_json_object
from .signature import generate_sonic_signature

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = "You are a code analysis assistant. Answer with a JSON object."
EVOLUTION_SYSTEM_PROMPT = "You are an expert code evolution engine."

EVOLUTION_TYPES = ("improvement", "new_feature", "refactor", "optimization")
ACTIONS = ("analyze", "evolve", "integrate", "rollback")

DEFAULT_INTEGRATION_PLAN: dict[str, Any] = {
    "steps": ["Review evolved code", "Test in sandbox", "Deploy incrementally"],
    "breaking_changes": [],
    "migration_notes": "Standard evolution - no breaking changes expected",
    "rollback_strategy": "Revert to previous version stored in rollback_data",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class CodeAnalysis:
    improvements: list[str]
    compatibility_score: float
    performance_impact: dict[str, Any] = field(default_factory=dict)
    risk_assessment: dict[str, Any] = field(default_factory=dict)


def manual_review() -> CodeAnalysis:
    return CodeAnalysis(
        improvements=["Unable to analyze - please review manually"],
        compatibility_score=0.5,
        performance_impact={"error": "Analysis failed"},
        risk_assessment={"error": "Analysis failed"},
    )


def build_analysis_prompt(code: str, entity_type: str) -> str:
    return f"""Analyze this {entity_type} code for potential improvements:

```javascript
{code}
```

Provide analysis in JSON format:
{{
  "improvements": ["list of specific improvement suggestions"],
  "performance_issues": ["any performance concerns"],
  "security_considerations": ["security-related observations"],
  "maintainability_score": 0-100,
  "testability_score": 0-100,
  "recommended_patterns": ["design patterns that could help"]
}}"""


def build_evolution_prompt(
        code: str,
        *,
        entity_name: str,
        entity_type: str,
        evolution_type: str,
        improvements: list[str],
) -> str:
    numbered = "\n".join(f"{i + 1}. {imp}" for i, imp in enumerate(improvements))
    return f"""You are an expert code evolution engine. Evolve this {entity_type} code named "{entity_name}" with focus on: {evolution_type}

Original code:
```javascript
{code}
```

Suggested improvements to apply:
{numbered}

Generate the evolved code that incorporates these improvements while maintaining backward compatibility.
Also provide an integration plan in JSON format at the end:

Respond with:
1. The complete evolved code in a code block
2. Integration plan as JSON: {{"steps": ["step1", "step2"], "breaking_changes": [], "migration_notes": "", "rollback_strategy": ""}}"""


def _list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


class CodeEvolutionEngine:
    def __init__(self, llm: LLMClient, *, analysis_model: str | None = None, evolution_model: str | None = None) -> None:
        self._llm = llm
        self._analysis_model = analysis_model
        self._evolution_model = evolution_model

    @classmethod
    def from_settings(cls, settings: Any, llm: LLMClient) -> "CodeEvolutionEngine":
        return cls(
            llm,
            analysis_model=getattr(settings, "llm_analysis_model", None),
            evolution_model=getattr(settings, "llm_evolution_model", None),
        )

    def analyze_code(self, code: str, entity_type: str) -> CodeAnalysis:
        try:
            content = self._llm.complete(
                [{"role": "user", "content": build_analysis_prompt(code, entity_type)}],
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
                model=self._analysis_model,
                temperature=0.3,
            )
        except LLMError as e:
            logger.warning("Code analysis failed: %s", e)
            return manual_review()

        analysis = extract_json_object(content) or {}
        improvements = [str(i) for i in _list(analysis.get("improvements"))]
        try:
            maintainability = float(analysis.get("maintainability_score") or 70)
        except (TypeError, ValueError):
            maintainability = 70.0
        return CodeAnalysis(
            improvements=improvements,
            compatibility_score=maintainability / 100,
            performance_impact={
                "issues": _list(analysis.get("performance_issues")),
                "optimization_potential": "high" if len(improvements) > 3 else "moderate",
            },
            risk_assessment={
                "security": _list(analysis.get("security_considerations")),
                "testability": analysis.get("testability_score") or 70,
                "patterns": _list(analysis.get("recommended_patterns")),
            },
        )

    def evolve_code(
            self,
            code: str,
            *,
            entity_name: str,
            entity_type: str,
            evolution_type: str,
            improvements: list[str],
    ) -> tuple[str, dict[str, Any]]:
        """(evolved_code, integration_plan). On LLM failure the source code comes back unchanged."""
        prompt = build_evolution_prompt(
            code,
            entity_name=entity_name,
            entity_type=entity_type,
            evolution_type=evolution_type,
            improvements=improvements,
        )
        try:
            content = self._llm.complete(
                [{"role": "user", "content": prompt}],
                system_prompt=EVOLUTION_SYSTEM_PROMPT,
                model=self._evolution_model,
                temperature=0.4,
            )
        except LLMError as e:
            logger.warning("Code evolution failed: %s", e)
            return code, {"error": "Evolution failed", "fallback": True}

        block = extract_code_block(content)
        evolved = block.strip() if block else code
        plan = extract_integration_plan(content) or dict(DEFAULT_INTEGRATION_PLAN)
        return evolved, plan

    def analyze(self, source_code: str, *, entity_name: str, entity_type: str) -> dict[str, Any]:
        if not source_code:
            raise ValueError("Source code required for analysis")
        signature = generate_sonic_signature(source_code, entity_name, entity_type)
        analysis = self.analyze_code(source_code, entity_type)
        return {
            "sonic_signature": signature.to_dict(),
            "improvement_analysis": {
                "suggestions": analysis.improvements,
                "priority_order": analysis.improvements[:5],
            },
            "compatibility_score": analysis.compatibility_score,
            "performance_impact": analysis.performance_impact,
            "risk_assessment": analysis.risk_assessment,
        }

    def evolve(
            self,
            source_code: str,
            *,
            entity_name: str,
            entity_type: str,
            evolution_type: str | None = None,
    ) -> dict[str, Any]:
        if not source_code:
            raise ValueError("Source code required for evolution")
        signature = generate_sonic_signature(source_code, entity_name, entity_type)
        analysis = self.analyze_code(source_code, entity_type)
        evolved, plan = self.evolve_code(
            source_code,
            entity_name=entity_name,
            entity_type=entity_type,
            evolution_type=evolution_type or "improvement",
            improvements=analysis.improvements,
        )
        evolved_signature = generate_sonic_signature(evolved, entity_name, entity_type)
        evolved_signature.evolution_generation = signature.evolution_generation + 1
        return {
            "source_code": source_code,
            "evolved_code": evolved,
            "sonic_signature": evolved_signature.to_dict(),
            "improvement_analysis": {"suggestions": analysis.improvements},
            "compatibility_score": analysis.compatibility_score,
            "performance_impact": analysis.performance_impact,
            "risk_assessment": analysis.risk_assessment,
            "integration_plan": plan,
            "rollback_data": {
                "original_code": source_code,
                "original_signature": signature.to_dict(),
                "timestamp": _now_iso(),
            },
        }

    def run(
            self,
            action: str,
            *,
            entity_type: str,
            entity_name: str,
            source_code: str | None = None,
            evolution_type: str | None = None,
    ) -> dict[str, Any]:
        logger.info("Code evolution: %s for %s %r", action, entity_type, entity_name)
        if action == "analyze":
            result = self.analyze(source_code or "", entity_name=entity_name, entity_type=entity_type)
        elif action == "evolve":
            result = self.evolve(
                source_code or "",
                entity_name=entity_name,
                entity_type=entity_type,
                evolution_type=evolution_type,
            )
        elif action == "integrate":
            result = {
                "status": "integration_ready",
                "message": "Evolution approved for integration",
                "applied_at": _now_iso(),
            }
        elif action == "rollback":
            result = {"status": "rollback_ready", "message": "Ready to restore previous version"}
        else:
            raise ValueError(f"Unknown action: {action}")

        return {"success": True, "action": action, "entityType": entity_type, "entityName": entity_name, **result}
