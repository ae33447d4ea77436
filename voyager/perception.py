"""Perception: find the interactive elements of a page and label them on screen."""

import asyncio
import logging
from typing import Any, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .config import AgentConfig
from .errors import ContentUnresponsive
from .models import ElementDescriptor

logger = logging.getLogger(__name__)

PROMPT_ATTRIBUTES = ("type", "name", "placeholder", "href")

MARK_ELEMENTS_JS = """
() => {
    const MARKER_ATTR = 'data-voyager-marker';
    const ID_ATTR = 'data-voyager-id';
    document.querySelectorAll('[' + MARKER_ATTR + ']').forEach(el => el.remove());
    document.querySelectorAll('[' + ID_ATTR + ']').forEach(el => el.removeAttribute(ID_ATTR));

    const vw = Math.max(document.documentElement.clientWidth || 0, window.innerWidth || 0);
    const vh = Math.max(document.documentElement.clientHeight || 0, window.innerHeight || 0);

    const isVisible = (el) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        if (style.display === 'none') return false;
        if (style.visibility === 'hidden') return false;
        if (parseFloat(style.opacity) === 0) return false;
        if (rect.width <= 0 || rect.height <= 0) return false;
        if (rect.width < 10 && rect.height < 10) return false;
        if (rect.bottom < 0 || rect.right < 0 || rect.top > vh || rect.left > vw) return false;
        if (el.getAttribute('aria-hidden') === 'true') return false;
        return true;
    };

    const isInteractive = (el) => {
        if (el.tagName === 'INPUT') {
            const type = (el.getAttribute('type') || '').toLowerCase();
            if (type === 'hidden') return false;
        }
        if (el.disabled) return false;
        const hint = ((el.id || '') + ' ' + (el.className || '').toString()).toLowerCase();
        if (/skip-to|skip-nav|sr-only|visually-hidden|screen-reader/.test(hint)) return false;
        return true;
    };

    const isScrollable = (el) => {
        const style = window.getComputedStyle(el);
        const overflow = style.overflowY + ' ' + style.overflowX + ' ' + style.overflow;
        if (!/(auto|scroll)/.test(overflow)) return false;
        const rect = el.getBoundingClientRect();
        if (rect.width <= 50 || rect.height <= 50) return false;
        return el.scrollHeight > el.clientHeight || el.scrollWidth > el.clientWidth;
    };

    const getText = (el) => {
        let text = '';
        if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA') {
            text = el.placeholder || el.value || el.type || '';
        } else {
            text = (el.innerText || '').trim();
            if (!text) {
                text = el.getAttribute('alt') || el.getAttribute('title') || el.getAttribute('aria-label') || '';
            }
        }
        return text.replace(/\\s{2,}/g, ' ').trim().slice(0, 100);
    };

    const getAttributes = (el) => {
        const attrs = {};
        const names = ['id', 'class', 'name', 'type', 'href', 'src', 'alt', 'title', 'aria-label', 'placeholder', 'value', 'role'];
        for (const name of names) {
            const value = el.getAttribute(name);
            if (value) attrs[name] = String(value).slice(0, 200);
        }
        return attrs;
    };

    const selectors = [
        'a[href]', 'button', 'input', 'textarea', 'select', 'summary', '[onclick]',
        '[contenteditable="true"]', '[tabindex]:not([tabindex="-1"])',
        '[role="button"]', '[role="link"]', '[role="tab"]', '[role="menuitem"]', '[role="option"]',
        '[role="checkbox"]', '[role="radio"]', '[role="switch"]', '[role="combobox"]',
        '[role="textbox"]', '[role="searchbox"]', '[role="slider"]', '[role="spinbutton"]',
    ];
    const clickable = Array.from(new Set(document.querySelectorAll(selectors.join(', '))))
        .filter(el => el instanceof HTMLElement && isVisible(el) && isInteractive(el));
    const scrollable = Array.from(document.querySelectorAll('body *'))
        .filter(el => el instanceof HTMLElement && !clickable.includes(el) && isVisible(el) && isScrollable(el));

    const elements = [];
    const candidates = clickable.map(el => [el, false]).concat(scrollable.map(el => [el, true]));
    candidates.forEach(([el, isScroll], id) => {
        const r = el.getBoundingClientRect();
        el.setAttribute(ID_ATTR, String(id));

        const label = document.createElement('div');
        label.setAttribute(MARKER_ATTR, String(id));
        const color = isScroll ? '#2563eb' : '#dc2626';
        label.style.cssText = [
            'position: fixed', 'z-index: 2147483647', 'pointer-events: none',
            'left: ' + Math.max(0, r.left) + 'px', 'top: ' + Math.max(0, r.top) + 'px',
            'width: ' + r.width + 'px', 'height: ' + r.height + 'px',
            'outline: 2px dashed ' + color, 'box-sizing: border-box',
            'font: bold 12px sans-serif', 'color: #fff',
        ].join(';');
        const badge = document.createElement('span');
        badge.textContent = String(id);
        badge.style.cssText = 'position:absolute;top:-14px;left:0;padding:0 3px;background:' + color;
        label.appendChild(badge);
        document.body.appendChild(label);

        elements.push({
            id,
            tagName: el.tagName.toLowerCase(),
            text: getText(el),
            rect: {
                x: r.x, y: r.y, width: r.width, height: r.height,
                left: r.left, top: r.top, right: r.right, bottom: r.bottom,
            },
            attributes: getAttributes(el),
            scrollable: isScroll,
        });
    });
    return elements;
}
"""

CLEAR_MARKERS_JS = """
() => {
    document.querySelectorAll('[data-voyager-marker]').forEach(el => el.remove());
    document.querySelectorAll('[data-voyager-id]').forEach(el => el.removeAttribute('data-voyager-id'));
    return true;
}
"""


class Perception:
    """
    Element-observation provider backed by page.evaluate.

    Every observe() call is a fresh pass: markers from the previous pass are
    removed and ids start again at 0.
    """

    def __init__(self, pages: Any, config: Optional[AgentConfig] = None):
        # ``pages`` resolves a tab id to a Playwright Page (see PlaywrightHost.page_for).
        self.pages = pages
        self.config = config or AgentConfig()

    def _page(self, tab_id: int) -> Optional[Page]:
        return self.pages.page_for(tab_id)

    async def observe(self, tab_id: int) -> List[ElementDescriptor]:
        try:
            raw = await self._evaluate(tab_id, MARK_ELEMENTS_JS)
        except (PlaywrightError, ContentUnresponsive) as exc:
            logger.info(f"Tab {tab_id} did not answer ({exc}), retrying once")
            await asyncio.sleep(self.config.timings.content_retry_ms / 1000)
            try:
                raw = await self._evaluate(tab_id, MARK_ELEMENTS_JS)
            except (PlaywrightError, ContentUnresponsive) as retry_exc:
                raise ContentUnresponsive(
                    f"Content on tab {tab_id} is not responding. Please refresh the page and try again. "
                    f"Error: {retry_exc}"
                ) from retry_exc

        elements = [ElementDescriptor.from_dict(item, fallback_id=i) for i, item in enumerate(raw or [])]
        logger.info(f"Marked {len(elements)} elements on tab {tab_id}")
        return elements

    async def clear_markers(self, tab_id: int) -> None:
        page = self._page(tab_id)
        if page is None or page.is_closed():
            logger.debug(f"Tab {tab_id} no longer exists, nothing to clear")
            return
        try:
            await page.evaluate(CLEAR_MARKERS_JS)
        except PlaywrightError as exc:
            logger.warning(f"Content on tab {tab_id} did not respond to clear markers: {exc}")

    async def _evaluate(self, tab_id: int, script: str) -> Any:
        page = self._page(tab_id)
        if page is None or page.is_closed():
            raise ContentUnresponsive(f"Tab {tab_id} is no longer available")
        return await page.evaluate(script)


def format_elements(elements: List[ElementDescriptor]) -> str:
    """Render elements for the oracle, one line per element."""
    lines = []
    for el in elements:
        text = el.attributes.get("aria-label") or el.text or ""
        attrs = " ".join(f'{key}="{el.attributes[key]}"' for key in PROMPT_ATTRIBUTES if el.attributes.get(key))
        scroll_str = " [SCROLLABLE]" if el.scrollable else ""
        lines.append(f'{el.id} (<{el.tag_name} {attrs}/>): "{text[:50]}"{scroll_str}')
    return "Valid Bounding Boxes:\n" + "\n".join(lines)
