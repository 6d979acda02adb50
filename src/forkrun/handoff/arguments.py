from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from forkrun.core.models import PATH_LIST_DELIMITER, split_path_list
from forkrun.utils.diagnostics import StarterArgumentError

STOP_PORT_FLAG = "--stop-port"
STOP_KEY_FLAG = "--stop-key"
JETTY_XML_FLAG = "--jetty-xml"
CONTEXT_XML_FLAG = "--context-xml"
PROPS_FLAG = "--props"


class StarterArguments(BaseModel):
    """Command line contract between the launcher and the child process."""

    model_config = ConfigDict(extra="forbid")

    stop_port: int = 0
    stop_key: Optional[str] = None
    jetty_xml: List[Path] = Field(default_factory=list)
    context_xml: Optional[Path] = None
    props: Optional[Path] = None

    @property
    def stop_requested(self) -> bool:
        """Stop-by-network is opt-in: both a port and a key are required."""
        return self.stop_port > 0 and self.stop_key is not None

    def to_argv(self) -> List[str]:
        """Render the flags in the order the child expects them."""
        if self.props is None:
            raise StarterArgumentError("Option --props is required.")

        argv: List[str] = []
        if self.stop_requested:
            argv.extend([STOP_PORT_FLAG, str(self.stop_port), STOP_KEY_FLAG, str(self.stop_key)])
        if self.jetty_xml:
            argv.extend([JETTY_XML_FLAG, PATH_LIST_DELIMITER.join(str(p) for p in self.jetty_xml)])
        if self.context_xml is not None:
            argv.extend([CONTEXT_XML_FLAG, str(self.context_xml)])
        argv.extend([PROPS_FLAG, str(self.props)])
        return argv


def _read_option_value(tokens: Sequence[str], index: int, option_name: str) -> Tuple[str, int]:
    if index + 1 >= len(tokens):
        raise StarterArgumentError(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def parse_starter_arguments(tokens: Sequence[str]) -> StarterArguments:
    """
    Parse child process flags. Each flag takes exactly one following value;
    unrecognized tokens are ignored so newer launchers can add flags.
    """
    stop_port = 0
    stop_key: Optional[str] = None
    jetty_xml: List[Path] = []
    context_xml: Optional[Path] = None
    props: Optional[Path] = None

    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token == STOP_PORT_FLAG:
            value, index = _read_option_value(tokens, index, token)
            try:
                stop_port = int(value)
            except ValueError as exc:
                raise StarterArgumentError(f"Option {token} must be an integer, got '{value}'.") from exc
            continue
        if token == STOP_KEY_FLAG:
            stop_key, index = _read_option_value(tokens, index, token)
            continue
        if token == JETTY_XML_FLAG:
            value, index = _read_option_value(tokens, index, token)
            jetty_xml = [Path(name) for name in split_path_list(value)]
            continue
        if token == CONTEXT_XML_FLAG:
            value, index = _read_option_value(tokens, index, token)
            context_xml = Path(value)
            continue
        if token == PROPS_FLAG:
            value, index = _read_option_value(tokens, index, token)
            props = Path(value.strip())
            continue
        index += 1

    if props is None:
        raise StarterArgumentError("Option --props is required.")

    return StarterArguments(
        stop_port=stop_port,
        stop_key=stop_key,
        jetty_xml=jetty_xml,
        context_xml=context_xml,
        props=props,
    )
