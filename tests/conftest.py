"""
Pytest configuration and fixtures for surfacemap tests.
"""
import pytest

from surfacemap.config import Config, ScopeConfig
from surfacemap.coordinator import AdmissionCoordinator

BASE = "http://t.example/"

PRODUCT_TEMPLATE = """
<html>
  <head><title>{name}</title><link rel="stylesheet" href="/s.css"></head>
  <body>
    <header><nav><a href="/">Home</a><a href="/catalog">Catalog</a></nav></header>
    <main>
      <h1>{name}</h1>
      <div class="price"><span>{price}</span></div>
      <p>{blurb}</p>
      <form action="/cart" method="post"><input name="qty"><button>Add</button></form>
    </main>
    <footer><p>footer</p></footer>
  </body>
</html>
"""

PLAIN_PAGE = "<html><head><title>a</title></head><body><p>hello</p></body></html>"

FORM_PAGE = (
    "<html><body><div><form action='/s' method='post'>"
    + "".join(f"<input name='f{i}'>" for i in range(8))
    + "<textarea></textarea><button>go</button></form></div></body></html>"
)

LINK_PAGE = (
    "<html><body><nav><ul>"
    + "".join(f"<li><a href='/x{i}'>x</a></li>" for i in range(20))
    + "</ul></nav><footer><span>c</span></footer></body></html>"
)


def product_page(i: int) -> str:
    return PRODUCT_TEMPLATE.format(name=f"Product {i}", price=f"${i}.99", blurb="x" * i)


@pytest.fixture
def scoped_config():
    """Default config restricted to t.example."""
    return Config().with_overrides(scope=ScopeConfig(include_domains=("t.example",)))


@pytest.fixture
def coordinator(scoped_config):
    return AdmissionCoordinator(scoped_config)


@pytest.fixture
def make_coordinator():
    """Build a coordinator scoped to t.example with section overrides."""
    def _make(**overrides):
        cfg = Config().with_overrides(scope=ScopeConfig(include_domains=("t.example",)))
        return AdmissionCoordinator(cfg.with_overrides(**overrides))
    return _make


@pytest.fixture
def pages():
    """Sample documents: product(i) shares one template, the rest differ in layout."""
    class Pages:
        plain = PLAIN_PAGE
        form = FORM_PAGE
        links = LINK_PAGE
        product = staticmethod(product_page)
    return Pages
