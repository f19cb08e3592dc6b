import csv
import json
import uuid
from logging import getLogger
from typing import Optional

from lead_harvest.infra.langfuse_observation import trace_context
from lead_harvest.infra.llm import LeadExtractionClient

from .config import HarvestConfig
from .errors import HarvestError
from .workflow import run_lead_harvest_workflow

logger = getLogger(__name__)


def run_lead_harvest_workflow_csv(
    csv_path: str,
    output_path: Optional[str] = None,
    session_id: Optional[str] = None,
    config: Optional[HarvestConfig] = None,
    client: Optional[LeadExtractionClient] = None,
) -> list[dict]:
    """
    Run the harvest for every query in a CSV file and emit JSON Lines
    Args:
        csv_path (str): input CSV with a "query" column
        output_path (str, optional): output file path (JSON Lines)
        session_id (str, optional): Langfuse session ID
    Returns:
        list[dict]: one record per processed query; failed queries carry "error"
    """

    if config is None:
        config = HarvestConfig.from_env()
    if client is None:
        client = LeadExtractionClient(
            config.model, temperature=config.temperature, timeout=config.call_timeout
        )
    if session_id is None:
        session_id = f"lead-harvest-{uuid.uuid4()}"

    results: list[dict] = []
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            query = (row.get("query") or "").strip()
            if not query:
                logger.warning("Skipping row with missing query: %s", row)
                continue

            logger.info("Processing query: %s", query)
            try:
                result = run_lead_harvest_workflow(
                    query,
                    config,
                    client=client,
                    span_context=trace_context(
                        "lead_harvest_csv_batch",
                        session_id=session_id,
                        metadata={"query": query},
                    ),
                )
                record = result.model_dump()
            except HarvestError as e:
                logger.error("Harvest failed for query %s: %s", query, e)
                record = {"query": query, "error": str(e)}
            logger.info("Finished processing query: %s", query)
            results.append(record)
            print(json.dumps(record, ensure_ascii=False))

    if output_path:
        with open(output_path, "w", encoding="utf-8") as out:
            for record in results:
                out.write(json.dumps(record, ensure_ascii=False) + "\n")
        logger.info("Finished writing results to JSON Lines: %s", output_path)
    return results
