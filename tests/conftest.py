"""In-memory stand-ins for the parts of Selenium the bot touches."""

import os
import re
from urllib.parse import urlsplit

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")

from selenium.common.exceptions import (  # noqa: E402
    ElementClickInterceptedException,
    StaleElementReferenceException,
)
from selenium.webdriver.common.by import By  # noqa: E402

from purge_bot import interaction, subscriptions, waits  # noqa: E402
from purge_bot.settings import PurgeConfig  # noqa: E402

_ATTR_RE = re.compile(r"\[([\w-]+)(?:([*^]?=)['\"]([^'\"]*)['\"])?\]")
_CLASS_RE = re.compile(r"\.([\w-]+)")
_TAG_RE = re.compile(r"[\w*-]+")


def _split_outside_brackets(selector, is_separator):
    parts, current, depth = [], "", 0
    for char in selector:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if depth == 0 and is_separator(char):
            if current.strip():
                parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def _matches_compound(element, compound):
    pos = 0
    tag = _TAG_RE.match(compound)
    if tag:
        if tag.group(0) != "*" and tag.group(0) != element.tag:
            return False
        pos = tag.end()
    while pos < len(compound):
        if compound[pos] == ".":
            found = _CLASS_RE.match(compound, pos)
            if found.group(1) not in (element.attrs.get("class") or "").split():
                return False
        elif compound[pos] == "[":
            found = _ATTR_RE.match(compound, pos)
            name, op, value = found.groups()
            actual = element.attrs.get(name)
            if actual is None:
                return False
            if op == "=" and actual != value:
                return False
            if op == "*=" and value not in actual:
                return False
            if op == "^=" and not actual.startswith(value):
                return False
        else:
            raise ValueError(f"Unsupported selector: {compound}")
        pos = found.end()
    return True


def _matches_complex(element, selector):
    compounds = _split_outside_brackets(selector, str.isspace)
    if not _matches_compound(element, compounds[-1]):
        return False
    index, node = len(compounds) - 2, element.parent
    while index >= 0 and node is not None:
        if _matches_compound(node, compounds[index]):
            index -= 1
        node = node.parent
    return index < 0


def matches(element, selector):
    return any(
        _matches_complex(element, part)
        for part in _split_outside_brackets(selector, lambda c: c == ",")
    )


class FakeElement:
    def __init__(self, tag="div", text="", attrs=None, children=(), width=20, height=20,
                 on_click=None, intercept_clicks=False):
        self.tag = tag
        self._text = text
        self.attrs = dict(attrs or {})
        self.children = []
        self.parent = None
        self.width = width
        self.height = height
        self.on_click = on_click
        self.intercept_clicks = intercept_clicks
        self.clicks = 0
        self.stale = False
        for child in children:
            if child is not None:
                self.append(child)

    def append(self, child):
        child.parent = self
        self.children.append(child)
        return child

    def _check(self):
        if self.stale:
            raise StaleElementReferenceException("element is not attached to the page document")

    def mark_stale(self):
        self.stale = True
        for child in self.children:
            child.mark_stale()

    @property
    def shown(self):
        return self.width > 0 and self.height > 0

    @property
    def text(self):
        self._check()
        if not self.shown:
            return ""
        parts = [self._text] + [child.text for child in self.children]
        return "\n".join(part for part in parts if part)

    @property
    def rect(self):
        self._check()
        return {"x": 0, "y": 0, "width": self.width, "height": self.height}

    def get_attribute(self, name):
        self._check()
        return self.attrs.get(name)

    def descendants(self):
        for child in self.children:
            yield child
            yield from child.descendants()

    def find_elements(self, by, selector):
        self._check()
        assert by == By.CSS_SELECTOR
        return [el for el in self.descendants() if matches(el, selector)]

    def activate(self):
        self._check()
        self.clicks += 1
        if self.on_click is not None:
            self.on_click(self)

    def click(self):
        self._check()
        if self.intercept_clicks:
            raise ElementClickInterceptedException("element click intercepted")
        self.activate()


class FakeDriver:
    def __init__(self, router=None, document=None, url="https://mail.google.com/mail/u/0/#inbox",
                 pointer_clicks=False):
        self.router = router
        self.document = document if document is not None else FakeElement("html")
        self.current_url = url
        self.history = []
        self.scripts = []
        self.observers = {}
        self.observed = []
        self.released = []
        self.screenshots = []
        # Synthetic pointer events are dropped unless pointer_clicks is set. A
        # page that honours them sees every invoke() as two activations.
        self.pointer_clicks = pointer_clicks

    def mutate(self):
        """Report one structural change to every open change subscription."""
        for key in self.observers:
            self.observers[key] += 1

    def load(self, url):
        self.document.mark_stale()
        self.current_url = url
        self.document = self.router(url)
        self.mutate()

    def get(self, url):
        self.history.append(self.current_url)
        self.load(url)

    def back(self):
        if self.history:
            self.load(self.history.pop())

    def find_elements(self, by, selector):
        return self.document.find_elements(by, selector)

    def scripts_named(self, script):
        return [args for body, args in self.scripts if body is script]

    def execute_script(self, script, *args):
        for arg in args:
            if isinstance(arg, FakeElement):
                arg._check()
        self.scripts.append((script, args))

        if script is waits.OBSERVE_SCRIPT:
            self.observers[args[1]] = 0
            self.observed.append(args[1])
            return True
        if script is waits.COUNT_SCRIPT:
            return self.observers.get(args[0])
        if script is waits.RELEASE_SCRIPT:
            self.observers.pop(args[0], None)
            self.released.append(args[0])
            return True
        if script is interaction.POINTER_EVENT_SCRIPT:
            if self.pointer_clicks and args[1] == "click":
                args[0].activate()
            return None
        if script is interaction.SCRIPT_CLICK_SCRIPT:
            args[0].activate()
            return None
        if script is subscriptions.INJECT_CONTROL_SCRIPT:
            row, label, key, css_class = args
            return row.append(FakeElement(
                "button", label, {"class": css_class, "data-purge-target": key}
            ))
        if script is subscriptions.CONTROL_STATUS_SCRIPT:
            control, label, disabled = args
            control._text = label
            if disabled:
                control.attrs["disabled"] = "true"
            else:
                control.attrs.pop("disabled", None)
            return None
        return None

    def save_screenshot(self, path):
        self.screenshots.append(path)
        return True


class FakeGmail:
    """
    A tiny Gmail: a subscriptions view and a paginated sender search.

    Every navigation rebuilds the tree, so references taken before it go
    stale just like in a browser.
    """

    SUBSCRIPTIONS_URL = "https://mail.google.com/mail/u/0/#sub"

    def __init__(self, senders, pages=1, banner=False, delete_control=True,
                 unsubscribe_control=True, sender_links=False):
        self.senders = senders
        self.pages = pages
        self.banner = banner
        self.delete_control = delete_control
        self.unsubscribe_control = unsubscribe_control
        self.sender_links = sender_links
        self.deletes = []
        self.older_clicks = 0
        self.banner_clicks = 0
        self.checkbox_clicks = 0
        self.unsubscribed = []
        self.subscription_renders = 0
        self.driver = FakeDriver(router=self.route, url=self.SUBSCRIPTIONS_URL)
        self.driver.document = self.route(self.SUBSCRIPTIONS_URL)

    def route(self, url):
        fragment = urlsplit(url).fragment
        if fragment.startswith("search/"):
            found = re.search(r"/p(\d+)$", fragment)
            return self.search_view(url, int(found.group(1)) if found else 1)
        return self.subscriptions_view()

    def _search_fragment(self, name, address):
        return f"#search/from:{(address or name).replace('@', '%40')}"

    def subscriptions_view(self):
        self.subscription_renders += 1
        rows = []
        for name, address in self.senders:
            key = address or name
            sender_attrs = {"email": address} if address else {}
            link = None
            if self.sender_links:
                link = FakeElement(
                    "a", "View emails", {"href": self._search_fragment(name, address)},
                    on_click=lambda el, n=name, a=address: self.driver.get(
                        "https://mail.google.com/mail/u/0/" + self._search_fragment(n, a)
                    ),
                )
            unsubscribe = None
            if self.unsubscribe_control:
                unsubscribe = FakeElement("div", attrs={"role": "gridcell"}, children=[
                    FakeElement("button", "Unsubscribe",
                                on_click=lambda el, k=key: self.unsubscribed.append(k)),
                ])
            rows.append(FakeElement("div", attrs={"role": "listitem"}, children=[
                FakeElement("span", name, sender_attrs),
                link,
                unsubscribe,
            ]))
        main = FakeElement("div", attrs={"role": "main"}, children=[
            FakeElement("h2", "Subscriptions"),
            *rows,
        ])
        return FakeElement("html", children=[main])

    def _turn_page(self, url, page):
        self.older_clicks += 1
        base = re.sub(r"/p\d+$", "", url)
        self.driver.get(f"{base}/p{page + 1}")

    def _select_all_matching(self, el):
        self.banner_clicks += 1

    def _select_page(self, el):
        self.checkbox_clicks += 1

    def search_view(self, url, page):
        older_attrs = {"role": "button", "aria-label": "Older"}
        if page >= self.pages:
            older_attrs["aria-disabled"] = "true"

        toolbar = FakeElement("div", attrs={"gh": "mtb"}, children=[
            FakeElement("span", attrs={"role": "checkbox", "aria-label": "Select"},
                        on_click=self._select_page),
            FakeElement("div", attrs={"role": "button", "aria-label": "Delete"},
                        on_click=lambda el, p=page: self.deletes.append(p))
            if self.delete_control else None,
            FakeElement("div", attrs=older_attrs,
                        on_click=lambda el, p=page: self._turn_page(url, p)),
        ])
        banner = None
        if self.banner:
            banner = FakeElement("span", "Select all conversations that match this search",
                                 on_click=self._select_all_matching)
        main = FakeElement("div", attrs={"role": "main"}, children=[
            toolbar,
            banner,
            FakeElement("div", f"Message on page {page}", {"role": "row"}),
        ])
        return FakeElement("html", children=[main])

    def row_for(self, key):
        for row in self.driver.find_elements(By.CSS_SELECTOR, "[role='listitem']"):
            if key.lower() in row.text.lower():
                return row
        raise LookupError(key)


@pytest.fixture
def fast_config():
    return PurgeConfig(
        wait_timeout=0.3,
        control_timeout=0.05,
        navigation_timeout=0.05,
        settle_delay=0,
        after_select_delay=0,
        after_banner_delay=0,
        after_delete_delay=0,
        after_page_turn_delay=0,
        poll_frequency=0.01,
    )
