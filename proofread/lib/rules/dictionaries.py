from __future__ import annotations

import re
from typing import List

from .engine import Rule

_CJK = r"[一-鿿]"

DE_CONFUSION: tuple[tuple[str, str, str], ...] = (
    ("跑的很快", "跑得很快", '补语前应使用"得"'),
    ("认真的学习", "认真地学习", '修饰动词应使用"地"'),
    ("美丽地花朵", "美丽的花朵", '修饰名词应使用"的"'),
)
"""的/地/得 の誤用 (誤り, 正解, 説明)。"""

HOMOPHONES: tuple[tuple[str, str, str], ...] = (
    ("在见", "再见", '告别语应为"再见"'),
    ("作作业", "做作业", '"做作业"中应使用"做"'),
    ("以经", "已经", '"已经"误写为"以经"'),
    ("即然", "既然", '"既然"误写为"即然"'),
)
"""同音字の書き誤り。"""


def builtin_rules() -> List[Rule]:
    rules: List[Rule] = [
        Rule(
            id="duplicate_exclamation",
            name="重复感叹号",
            type="punctuation",
            pattern=re.compile(r"！{2,}"),
            replacement="！",
            confidence=0.95,
            description="感叹号重复使用",
        ),
        Rule(
            id="duplicate_question",
            name="重复问号",
            type="punctuation",
            pattern=re.compile(r"？{2,}"),
            replacement="？",
            confidence=0.95,
            description="问号重复使用",
        ),
        Rule(
            id="duplicate_comma",
            name="重复逗号",
            type="punctuation",
            pattern=re.compile(r"，{2,}"),
            replacement="，",
            confidence=0.95,
            description="逗号重复使用",
        ),
        Rule(
            id="ellipsis",
            name="省略号",
            type="punctuation",
            pattern=re.compile(r"\.{3,}|。{3,}"),
            replacement="……",
            confidence=0.9,
            description="中文省略号应为“……”",
        ),
        Rule(
            id="halfwidth_comma",
            name="半角逗号",
            type="punctuation",
            pattern=re.compile(rf"(?<={_CJK}),(?={_CJK})"),
            replacement="，",
            confidence=0.85,
            description="中文语境中应使用全角逗号",
        ),
    ]
    for index, (wrong, correct, description) in enumerate(DE_CONFUSION):
        rules.append(
            Rule.literal(f"de_confusion_{index}", wrong, correct, type="spelling", description=description)
        )
    for index, (wrong, correct, description) in enumerate(HOMOPHONES):
        rules.append(
            Rule.literal(f"homophone_{index}", wrong, correct, type="spelling", description=description)
        )
    return rules


__all__ = ["DE_CONFUSION", "HOMOPHONES", "builtin_rules"]
