"""
Source Synthesizer.

Turns caller supplied test code into a self-contained compilation unit by
prepending the framework imports when they are missing. Pure text in, text out.
"""

import json
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Preamble:
    markers: Tuple[str, ...]
    imports: str
    constant_template: Optional[str] = None

    def is_present(self, source_text: str) -> bool:
        return any(marker in source_text for marker in self.markers)

    def render(self, program_id: Optional[str] = None) -> str:
        header = self.imports.rstrip("\n") + "\n"
        if program_id and self.constant_template:
            # json.dumps yields a correctly escaped string literal
            header += "\n" + self.constant_template.format(program_id=json.dumps(program_id)) + "\n"
        return header + "\n"


ANCHOR_PREAMBLE = Preamble(
    markers=(
        "import * as anchor",
        'from "@coral-xyz/anchor"',
        "from '@coral-xyz/anchor'",
    ),
    imports=(
        'import * as anchor from "@coral-xyz/anchor";\n'
        'import { Program } from "@coral-xyz/anchor";\n'
        'import { Connection, PublicKey, Keypair, SystemProgram } from "@solana/web3.js";\n'
        'import { assert } from "chai";\n'
    ),
    constant_template="const PROGRAM_ID = new PublicKey({program_id});",
)


def synthesize(source_text: str, program_id: Optional[str] = None, preamble: Preamble = ANCHOR_PREAMBLE) -> str:
    """
    Return ``source_text`` as a complete compilation unit.

    The preamble (plus a ``PROGRAM_ID`` constant when ``program_id`` is given)
    is only prepended when none of its markers already occur in the text, so
    ``synthesize(synthesize(x)) == synthesize(x)``.
    """
    if preamble.is_present(source_text):
        return source_text
    return preamble.render(program_id) + source_text
