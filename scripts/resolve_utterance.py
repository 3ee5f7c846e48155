"""
Run one utterance through the voice search pipeline.

This script:
1) Loads configuration from the environment
2) Classifies the utterance and extracts hints
3) Resolves it to a command (LLM fallback when OPENAI_API_KEY is set)
4) Optionally runs budget-gated AI discovery

Usage:
    python -m scripts.resolve_utterance "Sabrina recommends Baby Girl"
    python -m scripts.resolve_utterance "the one where a guy is stranded on mars" --discover
"""

import argparse  # command-line flags
import asyncio  # run the async pipeline

import httpx  # shared HTTP client
from loguru import logger  # console logging

from voice_search.analytics import drain_background  # wait for ledger writes before exit
from voice_search.config import load_config  # environment-driven settings
from voice_search.models import command_to_dict
from voice_search.router import build_pipeline  # pipeline wiring


async def run(utterance: str, discover: bool) -> None:
	config = load_config()
	async with httpx.AsyncClient() as http:
		pipeline = build_pipeline(config, http)
		outcome = await pipeline.handle(utterance, run_discovery=discover)

		c = outcome.classification
		logger.info("=" * 60)
		logger.info(f"Utterance: {outcome.utterance.text}")
		logger.info(f"Intent: {c.intent.value} (confidence {c.confidence:.2f}) evidence={list(c.evidence)}")
		if outcome.hints.has_any_hints:
			logger.info(f"Hints: {outcome.hints.to_wire(omit_empty=True)}")
		if outcome.action is not None:
			logger.info(f"Action: {outcome.action}")
		if outcome.final_command is not None:
			logger.info(f"Command: {command_to_dict(outcome.final_command)} (llm_used={outcome.llm_used})")
		if outcome.llm_error:
			logger.warning(f"LLM fallback error: {outcome.llm_error}")
		if outcome.discovery is not None:
			d = outcome.discovery
			logger.info(f"Discovery: {d.interpretation} | cost {d.cost_cents:.4f}c | {d.latency_ms} ms")
			for i, s in enumerate(d.suggestions, 1):
				logger.info(f"  {i}. {s.title} ({s.year or '?'}) [{s.confidence.value}] {s.reason or ''}")
		if outcome.discovery_error:
			logger.warning(f"Discovery error: {outcome.discovery_error}")
		logger.info(f"Route: {outcome.route} | result: {outcome.handler_result.value}")
		logger.info("=" * 60)

		await drain_background(timeout=5.0)


def main():
	parser = argparse.ArgumentParser(description="Resolve a voice utterance")
	parser.add_argument("utterance", help="finalized transcript text")
	parser.add_argument("--discover", action="store_true", help="run AI discovery for fuzzy or unresolved utterances")
	args = parser.parse_args()
	asyncio.run(run(args.utterance, args.discover))


if __name__ == '__main__':
	main()  # invoke resolver
