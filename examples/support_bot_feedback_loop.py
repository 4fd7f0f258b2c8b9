"""
Tellah - Example: Customer Support Bot Feedback Loop

Walks one project through the whole loop against a real
OpenAI-compatible endpoint:

  1. Define the behavior spec (system prompt, model, temperature)
  2. Add scenarios
  3. Generate an output per scenario
  4. Rate each output (here: a crude length-based rater stands in for a human)
  5. Extract quality criteria from the ratings
  6. Export the result as a Markdown quality spec

Requires OPENAI_API_KEY (or a .env file). Uses its own database under
./.tellah_example unless TELLAH_DB_PATH is set.
"""

import asyncio
import os
from pathlib import Path

os.environ.setdefault("TELLAH_DB_PATH", str(Path(".tellah_example") / "tellah.db"))

from tellah import export, extraction, generation, projects, storage  # noqa: E402


SYSTEM_PROMPT = """You are the support assistant for Parcelly, a parcel delivery service.
Answer customer questions about deliveries, returns and billing.
Be warm, get to the point, and always end with a concrete next step."""

SCENARIOS = [
    "Where is my package? Tracking number PX-88213.",
    "My parcel arrived damaged, what can I do?",
    "Can I change the delivery address after shipping?",
    "Why was I charged twice this month?",
    "How do I return an item I don't want?",
    "The courier left my package with a neighbor I don't know.",
]


def rate(output_text: str) -> tuple:
    """Stand-in for a human rater: rewards short answers that end with a next step."""
    words = len(output_text.split())
    has_next_step = any(k in output_text.lower() for k in ("you can", "please", "next step", "reply"))

    if words <= 80 and has_next_step:
        return 5, "Short and actionable"
    if words <= 120:
        return 4, "Fine, a little long"
    if has_next_step:
        return 2, "Too long before getting to the point"
    return 1, "Rambling and no next step"


async def main():
    storage.init_db()

    # ==========================================================
    # Step 1-2: Project and scenarios
    # ==========================================================

    print("\n" + "=" * 60)
    print("STEP 1: Create project and scenarios")
    print("=" * 60)

    project = projects.create_project(
        name="Parcelly Support Bot",
        description="Tier-1 customer support for parcel delivery",
        model_config={"model": "gpt-4o-mini", "temperature": 0.7, "system_prompt": SYSTEM_PROMPT},
    )
    for text in SCENARIOS:
        projects.add_scenario(project["id"], text)
    print(f"Project {project['id']}: {len(SCENARIOS)} scenarios")

    # ==========================================================
    # Step 3: Generate
    # ==========================================================

    print("\n" + "=" * 60)
    print("STEP 2: Generate outputs")
    print("=" * 60)

    result = await generation.generate_outputs(project["id"])
    print(f"Generated {result.generated}/{result.total}")
    for error in result.errors:
        print(f"  ❌ scenario {error['scenario_id']}: {error['error']}")

    # ==========================================================
    # Step 4: Rate
    # ==========================================================

    print("\n" + "=" * 60)
    print("STEP 3: Rate outputs")
    print("=" * 60)

    for output in result.outputs:
        stars, feedback = rate(output["output_text"])
        projects.rate_output(output["id"], stars, feedback_text=feedback)
        print(f"  {'⭐' * stars:<5} {feedback}")

    # ==========================================================
    # Step 5: Extract
    # ==========================================================

    print("\n" + "=" * 60)
    print("STEP 4: Extract patterns")
    print("=" * 60)

    extracted = await extraction.run_extraction(project["id"])
    insights = extraction.get_insights(project["id"])
    summary = insights.to_dict()
    print(f"Success rate: {summary['success_rate']:.0%} ({insights.interpretations['success_rate']['label']})")
    print(f"Confidence:   {summary['confidence_score']:.0%} ({insights.interpretations['confidence']['label']})")
    for criterion in extracted.extraction["criteria"].get("criteria") or []:
        if not isinstance(criterion, dict):
            continue
        print(f"  - [{criterion.get('importance')}] {criterion.get('dimension')}: {criterion.get('pattern')}")

    # ==========================================================
    # Step 6: Export
    # ==========================================================

    doc = export.export_project(project["id"], export.MARKDOWN)
    Path(doc.filename).write_text(doc.content, encoding="utf-8")
    print(f"\nWrote {doc.filename}")


if __name__ == "__main__":
    asyncio.run(main())
