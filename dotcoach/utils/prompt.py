import json

SYSTEM_PROMPT = (
    "You are dotcoach, a shell productivity assistant. You receive repeated "
    "command patterns and risky commands mined from a user's shell history. "
    "Secrets have already been replaced with [REDACTED]; never try to guess them."
)

TEMPLATE = """{system}

Shell: {shell}

STRICT OUTPUT: Return ONLY JSON matching this schema:
{{
  "suggestions":[{{"pattern":"", "type":"alias|function|script", "name":"", "code":"", "explanation":"", "safety":"safe|warning|danger"}}],
  "notes": ["..."]
}}

Guidelines:
- One suggestion per pattern at most, in the syntax of the given shell.
- Prefer an alias for a fixed command, a function when arguments vary, a script for multi-step work.
- For each dangerous command, suggest a safer wrapper and set "safety" to "warning" or "danger".
- Never include [REDACTED] values in code; take them from the environment or a prompt instead.
- Keep names short and unlikely to shadow existing commands.

INPUT:
{input_blob}
"""


def compact_payload(payload: dict) -> dict:
    # payload is already scrubbed upstream; keep only what the model needs
    return {
        "patterns": [
            {
                "pattern": p.get("pattern"),
                "frequency": p.get("frequency"),
                "variations": (p.get("variations") or [])[:5],
            }
            for p in payload.get("patterns", [])
        ],
        "dangerous_commands": payload.get("dangerous_commands", []),
    }


def build_prompt(payload: dict) -> str:
    return TEMPLATE.format(
        system=SYSTEM_PROMPT,
        shell=payload.get("shell") or "bash",
        input_blob=json.dumps(compact_payload(payload), ensure_ascii=False),
    )
