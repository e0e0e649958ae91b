"""
Named browser-side probe scripts.

Every script the explorer executes in the page lives here. Callers invoke
them through the helper coroutines at the bottom of the module so that
script text never spreads across the codebase.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autoexplore.webdriver.client import RemoteElement, WebDriverClient


INTERACTIVE_SELECTOR = (
    "a[href], button, input, select, textarea, "
    "[onclick], [data-toggle], [role='button'], .btn, .button"
)

_XPATH_FUNCTION = """
function __literal(s) {
    if (s.indexOf("'") === -1) { return "'" + s + "'"; }
    if (s.indexOf('"') === -1) { return '"' + s + '"'; }
    return "concat('" + s.split("'").join("', \\"'\\", '") + "')";
}
function __xpath(el) {
    if (el.id) { return "//*[@id=" + __literal(el.id) + "]"; }
    if (el === document.body) { return '/html/body'; }
    if (!el.parentNode || el.parentNode.nodeType !== 1) { return '/' + el.tagName.toLowerCase(); }
    var index = 0;
    var siblings = el.parentNode.childNodes;
    for (var i = 0; i < siblings.length; i++) {
        var sibling = siblings[i];
        if (sibling === el) {
            var tag = el.tagName.toLowerCase();
            return __xpath(el.parentNode) + '/' + tag + '[' + (index + 1) + ']';
        }
        if (sibling.nodeType === 1 && sibling.tagName === el.tagName) { index++; }
    }
    return '';
}
function __visible(el) {
    var style = window.getComputedStyle(el);
    var rect = el.getBoundingClientRect();
    return style.display !== 'none' && style.visibility !== 'hidden'
        && (rect.width > 0 || rect.height > 0);
}
"""

VISIBLE_TEXT = "return document.body ? document.body.innerText : '';"

INTERACTIVE_COUNT = (
    _XPATH_FUNCTION
    + """
var nodes = document.querySelectorAll(arguments[0]);
var count = 0;
for (var i = 0; i < nodes.length; i++) {
    if (__visible(nodes[i]) && !nodes[i].disabled) { count++; }
}
return count;
"""
)

INTERACTIVE_ELEMENTS = (
    _XPATH_FUNCTION
    + """
var nodes = document.querySelectorAll(arguments[0]);
var result = [];
for (var i = 0; i < nodes.length; i++) {
    var el = nodes[i];
    if (el.type === 'hidden') { continue; }
    result.push({
        tag: el.tagName.toLowerCase(),
        type: (el.getAttribute('type') || '').toLowerCase(),
        id: el.id || '',
        name: el.getAttribute('name') || '',
        text: (el.innerText || el.value || '').trim().substring(0, 200),
        href: el.getAttribute('href') || '',
        class_name: el.getAttribute('class') || '',
        locator: __xpath(el),
        displayed: __visible(el),
        form_id: el.form ? (el.form.id || '') : '',
        role: (el.getAttribute('role') || '').toLowerCase()
    });
}
return result;
"""
)

COMPONENTS = (
    _XPATH_FUNCTION
    + """
var nodes = document.querySelectorAll(
    "form, table, canvas, [class*='chart'], input, select, textarea, button, " + arguments[0]);
var seen = new Set();
var result = [];
for (var i = 0; i < nodes.length; i++) {
    var el = nodes[i];
    if (seen.has(el)) { continue; }
    seen.add(el);
    var options = [];
    if (el.tagName === 'SELECT') {
        for (var j = 0; j < el.options.length; j++) { options.push(el.options[j].text); }
    }
    result.push({
        tag: el.tagName.toLowerCase(),
        type: (el.getAttribute('type') || '').toLowerCase(),
        id: el.id || '',
        name: el.getAttribute('name') || '',
        class_name: el.getAttribute('class') || '',
        text: (el.innerText || el.value || '').trim().substring(0, 200),
        href: el.getAttribute('href') || '',
        locator: __xpath(el),
        displayed: __visible(el),
        required: !!el.required,
        pattern: el.getAttribute('pattern') || '',
        form_id: el.form ? (el.form.id || '') : '',
        child_count: el.tagName === 'TABLE' ? el.rows.length : el.children.length,
        options: options
    });
}
return result;
"""
)

PARENT_DESCRIPTOR = """
var parent = arguments[0].parentElement;
if (!parent) { return ''; }
var descriptor = parent.tagName.toLowerCase();
if (parent.id) { descriptor += '#' + parent.id; }
var cls = parent.getAttribute('class');
if (cls) { descriptor += '.' + cls.trim().split(/\\s+/).join('.'); }
return descriptor;
"""

ELEMENT_XPATH = _XPATH_FUNCTION + "\nreturn __xpath(arguments[0]);"

LINKS = """
var anchors = document.querySelectorAll('a[href]');
var result = [];
for (var i = 0; i < anchors.length; i++) { result.push(anchors[i].href); }
return result;
"""

META_DESCRIPTION = """
var meta = document.querySelector("meta[name='description']");
return meta ? (meta.getAttribute('content') || '') : '';
"""

FIELD_STATE = (
    _XPATH_FUNCTION
    + """
var nodes = document.querySelectorAll('input, select, textarea');
var result = [];
for (var i = 0; i < nodes.length; i++) {
    var el = nodes[i];
    if (el.type === 'hidden') { continue; }
    var key = el.getAttribute('name') || el.id || __xpath(el);
    var options = [];
    if (el.tagName === 'SELECT') {
        for (var j = 0; j < el.options.length; j++) { options.push(el.options[j].value); }
    }
    result.push({key: key, visible: __visible(el), enabled: !el.disabled, options: options});
}
return result;
"""
)

STORAGE_STATE = """
function __entries(storage) {
    var result = {};
    try {
        for (var i = 0; i < storage.length; i++) {
            var key = storage.key(i);
            result[key] = storage.getItem(key);
        }
    } catch (e) {}
    return result;
}
var hidden = {};
var inputs = document.querySelectorAll("input[type='hidden'][name]");
for (var i = 0; i < inputs.length; i++) { hidden[inputs[i].name] = inputs[i].value; }
return {
    localStorage: __entries(window.localStorage),
    sessionStorage: __entries(window.sessionStorage),
    hiddenField: hidden
};
"""


async def visible_text(handle: WebDriverClient) -> str:
    return str(await handle.execute_script(VISIBLE_TEXT) or "")


async def interactive_count(handle: WebDriverClient) -> int:
    return int(await handle.execute_script(INTERACTIVE_COUNT, INTERACTIVE_SELECTOR) or 0)


async def interactive_elements(handle: WebDriverClient) -> list[dict[str, Any]]:
    return list(await handle.execute_script(INTERACTIVE_ELEMENTS, INTERACTIVE_SELECTOR) or [])


async def components(handle: WebDriverClient) -> list[dict[str, Any]]:
    return list(await handle.execute_script(COMPONENTS, INTERACTIVE_SELECTOR) or [])


async def parent_descriptor(handle: WebDriverClient, element: RemoteElement) -> str:
    return str(await handle.execute_script(PARENT_DESCRIPTOR, element) or "")


async def element_xpath(handle: WebDriverClient, element: RemoteElement) -> str:
    return str(await handle.execute_script(ELEMENT_XPATH, element) or "")


async def links(handle: WebDriverClient) -> list[str]:
    return [str(href) for href in await handle.execute_script(LINKS) or []]


async def meta_description(handle: WebDriverClient) -> str:
    return str(await handle.execute_script(META_DESCRIPTION) or "")


async def field_state(handle: WebDriverClient) -> list[dict[str, Any]]:
    return list(await handle.execute_script(FIELD_STATE) or [])


async def storage_state(handle: WebDriverClient) -> dict[str, dict[str, str]]:
    """Web storage entries and named hidden inputs, keyed by storage type."""
    data = await handle.execute_script(STORAGE_STATE) or {}
    return {
        str(storage): {str(k): str(v) for k, v in (entries or {}).items()}
        for storage, entries in data.items()
    }
