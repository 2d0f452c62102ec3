"""系统提示词目录。

每种副操作（translate/polish/explain/correct）对应 prompts/<locale>/ 下的
一个固定指令文件，构造副请求时作为 role="system" 的上下文。
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, get_args


PROMPTS_DIR = Path(__file__).resolve().parent

PromptKind = Literal["translate", "polish", "explain", "correct"]
PROMPT_KINDS: tuple[str, ...] = get_args(PromptKind)


@lru_cache(maxsize=None)
def load_system_prompt(kind: PromptKind, locale: str = "zh") -> str:
    """按操作类型和语言加载系统提示词文本。"""

    if kind not in PROMPT_KINDS:
        raise KeyError(f"Unknown prompt kind: {kind!r}")
    fname = PROMPTS_DIR / locale / f"{kind}.md"
    return fname.read_text(encoding="utf-8")
