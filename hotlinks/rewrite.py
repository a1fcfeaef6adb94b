"""Rewrite every textual form of an image URL inside raw document text.

An image can be inserted into a document in six ways. Each form has its
own rule below; ``substitute`` applies them in order against the same
buffer. The order matters: the bare-URL rule matches anything, so it runs
last, after the other rules have consumed the occurrences they own.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Mapping, Pattern, Tuple

Rule = Callable[[str, str, str], str]

# characters that would make a longer URL out of the match
_URL_HEAD = r"(?<![\w/%:])"
_URL_TAIL = r"(?![\w\-~/%?#=&+@]|[.,:;!]\w)"


def escape_url(url: str) -> str:
    """Escape ``url`` so it matches only itself."""
    return re.escape(url)


def _compile(template: str, url: str, flags: int = 0) -> Pattern[str]:
    return re.compile(template.format(url=escape_url(url)), flags)


def replace_src_attribute(text: str, url: str, local_url: str) -> str:
    """<img src="http://..."> -> src='local'"""
    pattern = _compile(r"""src=["']{url}["']""", url, re.IGNORECASE)
    return pattern.sub(lambda _m: f"src='{local_url}'", text)


def replace_bbcode_image(text: str, url: str, local_url: str) -> str:
    """[img]http://...[/img]"""
    pattern = _compile(r"\[img\]{url}\[/img\]", url, re.IGNORECASE)
    return pattern.sub(lambda _m: f"[img]{local_url}[/img]", text)


def replace_linked_markdown_image(text: str, url: str, local_url: str) -> str:
    """[![alt](http://...)](http://...)"""
    pattern = _compile(r"\[!\[([^\]]*)\]\({url}\)\]\({url}\)", url)
    return pattern.sub(lambda m: f"[<img src='{local_url}' alt='{m.group(1)}'>]", text)


def replace_inline_markdown_image(text: str, url: str, local_url: str) -> str:
    """![alt](http://...)"""
    pattern = _compile(r"!\[([^\]]*)\]\({url}\)", url)
    return pattern.sub(lambda m: f"![{m.group(1)}]({local_url})", text)


def replace_reference_definition(text: str, url: str, local_url: str) -> str:
    """[1]: http://..."""
    pattern = _compile(r"\[(\d+)\]: {url}" + _URL_TAIL, url)
    return pattern.sub(lambda m: f"[{m.group(1)}]: {local_url}", text)


def replace_bare_url(text: str, url: str, local_url: str) -> str:
    """Any remaining literal occurrence becomes an image tag."""
    pattern = _compile(_URL_HEAD + "{url}" + _URL_TAIL, url)
    return pattern.sub(lambda _m: f"<img src='{local_url}'>", text)


RULES: Tuple[Rule, ...] = (
    replace_src_attribute,
    replace_bbcode_image,
    replace_linked_markdown_image,
    replace_inline_markdown_image,
    replace_reference_definition,
    replace_bare_url,
)


def substitute(text: str, url: str, local_url: str) -> str:
    """Replace ``url`` with ``local_url`` in every supported form."""
    if not url:
        return text
    for rule in RULES:
        text = rule(text, url, local_url)
    return text


def substitute_all(text: str, replacements: Mapping[str, str] | Iterable[Tuple[str, str]]) -> str:
    """Apply ``substitute`` for each (url, local_url) pair, in order."""
    pairs = replacements.items() if isinstance(replacements, Mapping) else replacements
    for url, local_url in pairs:
        text = substitute(text, url, local_url)
    return text
