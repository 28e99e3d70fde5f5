"""
JavaScript snippets evaluated in the native browser's tab.

Each builder returns a complete expression; arguments are embedded as JSON
literals so selectors and text never need escaping by hand.
"""

from __future__ import annotations

import json

# ═══════════════════════════════════════════════════════════════════════════════
# Reading
# ═══════════════════════════════════════════════════════════════════════════════

OUTER_HTML = "document.documentElement ? document.documentElement.outerHTML : ''"

PAGE_INFO = """
(() => {
    const meta = document.querySelector('meta[name="description"]');
    return {
        url: window.location.href,
        title: document.title || '',
        description: meta ? (meta.getAttribute('content') || '') : '',
        viewport: {width: window.innerWidth, height: window.innerHeight},
    };
})()
"""


def element_exists(selector: str) -> str:
    return f"!!document.querySelector({json.dumps(selector)})"


# ═══════════════════════════════════════════════════════════════════════════════
# Interaction
# ═══════════════════════════════════════════════════════════════════════════════


def click_selector(selector: str) -> str:
    return f"""
(() => {{
    const el = document.querySelector({json.dumps(selector)});
    if (!el) return false;
    el.scrollIntoView({{block: 'center'}});
    el.click();
    return true;
}})()
"""


def click_text(text: str) -> str:
    """Click the parent of the first text node containing `text` (document order)."""
    return f"""
(() => {{
    const needle = {json.dumps(text)};
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
    let node;
    while ((node = walker.nextNode())) {{
        if (node.textContent && node.textContent.includes(needle)) {{
            const el = node.parentElement;
            if (!el) continue;
            el.scrollIntoView({{block: 'center'}});
            el.click();
            return true;
        }}
    }}
    return false;
}})()
"""


def focus_and_clear(selector: str) -> str:
    return f"""
(() => {{
    const el = document.querySelector({json.dumps(selector)});
    if (!el) return false;
    el.focus();
    if ('value' in el) {{
        el.value = '';
        el.dispatchEvent(new Event('input', {{bubbles: true}}));
    }}
    return true;
}})()
"""


def scroll(direction: str, amount: int) -> str | None:
    if direction == "up":
        return f"window.scrollBy(0, -{amount})"
    if direction == "down":
        return f"window.scrollBy(0, {amount})"
    if direction == "top":
        return "window.scrollTo(0, 0)"
    if direction == "bottom":
        return "window.scrollTo(0, document.body.scrollHeight)"
    return None
