"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取聊天场景的 system prompt，
配置中显式给出的 system_prompt 优先。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(locale: str = "zh") -> str:
    """根据语言加载内置的系统提示词文本，未知语言回退到中文。"""

    fname = PROMPTS_DIR / locale / "chat_system.md"
    if not fname.exists():
        fname = PROMPTS_DIR / "zh" / "chat_system.md"
    return fname.read_text(encoding="utf-8").strip()


def resolve_system_prompt(cfg) -> str:
    if getattr(cfg, "system_prompt", None):
        return cfg.system_prompt
    return load_system_prompt(getattr(cfg, "prompt_locale", "zh"))
