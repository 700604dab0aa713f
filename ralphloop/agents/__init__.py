"""Content producers: the CLI agent and the interface the loop depends on."""

from ralphloop.agents.base import ContentProducer, ProduceContext, ProduceResult
from ralphloop.agents.cli_agent import CliAgent

__all__ = [
    "ContentProducer",
    "ProduceContext",
    "ProduceResult",
    "CliAgent",
]
