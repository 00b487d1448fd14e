import pytest

from care_guides import Config, create_app
from care_guides.shopify import GuideLookup

SECRET = "s3cr3t"


class FakeResolver:
    """
    Stand-in for ShopifyGuideResolver returning canned results.
    """

    def __init__(self, order_result=None, products_result=None):
        self.order_result = order_result or GuideLookup([])
        self.products_result = products_result or GuideLookup([])
        self.orders = []
        self.products = []

    def resolve_order(self, order):
        self.orders.append(order)
        return self.order_result

    def resolve_products(self, product_ids):
        self.products.append(list(product_ids))
        return self.products_result


@pytest.fixture
def make_client():
    """
    Factory returning a Flask test client for the given config and resolver.
    """

    def _make_client(config=None, resolver=None):
        flask_app = create_app(config or Config(shared_secret=SECRET), resolver=resolver)
        flask_app.testing = True
        return flask_app.test_client()

    return _make_client


@pytest.fixture(scope="module")
def test_client():
    flask_app = create_app(Config(shared_secret=SECRET))

    # create test client using the Flask app configured for testing
    with flask_app.test_client() as testing_client:
        # establish application context
        with flask_app.app_context():
            yield testing_client  # this is where the testing happens!
