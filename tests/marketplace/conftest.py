from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from marketplace.cart.management import add_to_cart
from marketplace.checkout.placement import create_order
from marketplace.inventory.stock import RegisterVariant
from marketplace.messaging import set_publisher
from marketplace.messaging.fake_adapter import FakePublisher
from marketplace.order import fulfillment
from marketplace.payment.gateway import set_gateway
from marketplace.payment.gateway.momo_adapter import MoMoGateway
from marketplace.payment.gateway.vnpay_adapter import VNPayGateway
from marketplace.payment.gateway.wallet_adapter import WalletGateway
from marketplace.payment.settings import MoMoSettings, VNPaySettings, WalletSettings
from marketplace.shipping import set_shipping_calculator
from marketplace.shipping.adapters import FlatRateShipping
from marketplace.voucher.management import create_voucher

SHIPPING_FEE = 20000.0

VNPAY_SETTINGS = VNPaySettings(
    tmn_code="TESTTMN1",
    hash_secret="vnpay-test-secret",
    url="https://vnpay.test/pay",
    return_url="https://shop.test/vnpay/return",
)
MOMO_SETTINGS = MoMoSettings(
    partner_code="MOMOTEST",
    access_key="momo-test-access",
    secret_key="momo-test-secret",
    endpoint="https://momo.test/create",
    redirect_url="https://shop.test/momo/return",
    ipn_url="https://shop.test/payments/momo/callback",
)
WALLET_SETTINGS = WalletSettings(secret="wallet-test-secret")


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def publisher():
    fake = FakePublisher()
    set_publisher(fake)
    return fake


@pytest.fixture(autouse=True)
def shipping():
    calculator = FlatRateShipping(fee=SHIPPING_FEE)
    set_shipping_calculator(calculator)
    return calculator


@pytest.fixture(autouse=True)
def gateways():
    installed = {
        "vnpay": VNPayGateway(VNPAY_SETTINGS),
        "momo": MoMoGateway(MOMO_SETTINGS),
        "wallet": WalletGateway(WALLET_SETTINGS),
    }
    for method, gateway in installed.items():
        set_gateway(method, gateway)
    return installed


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_variant():
    """Register a variant and return its id."""
    counter = {"n": 0}

    def _make(shop_id="shop-a", price=100000.0, quantity=100, product_id=None, sku=None, **fields):
        counter["n"] += 1
        return current_domain.process(
            RegisterVariant(
                product_id=product_id or f"prod-{counter['n']}",
                shop_id=shop_id,
                sku=sku or f"SKU-{counter['n']:03d}",
                name=fields.pop("name", f"Item {counter['n']}"),
                price=price,
                quantity=quantity,
                **fields,
            ),
            asynchronous=False,
        )

    return _make


@pytest.fixture()
def make_voucher():
    """Create a voucher that is live for the next month."""

    def _make(code, discount_value=10000.0, **fields):
        now = datetime.now(UTC)
        fields.setdefault("start_date", now - timedelta(days=1))
        fields.setdefault("end_date", now + timedelta(days=30))
        create_voucher(code, discount_value=discount_value, **fields)
        return code.upper()

    return _make


@pytest.fixture()
def checkout():
    """Put ``lines`` in the user's cart and check all of them out."""

    def _checkout(user_id, lines, payment_method="cod", **kwargs):
        item_ids = [add_to_cart(user_id, variant_id, quantity) for variant_id, quantity in lines]
        return create_order(user_id, item_ids, payment_method, **kwargs)

    return _checkout


@pytest.fixture()
def ship():
    """Drive a confirmed Order's SubOrder through the seller and shipper steps."""

    def _ship(sub_order, shipper_id="shipper-1", until="delivered"):
        sub_order_id, shop_id = str(sub_order.id), str(sub_order.shop_id)
        fulfillment.confirm_order(sub_order_id, shop_id)
        if until == "processing":
            return
        fulfillment.pack_order(sub_order_id, shop_id)
        if until == "ready_to_ship":
            return
        fulfillment.pickup_order(sub_order_id, shipper_id)
        if until == "shipping":
            return
        fulfillment.deliver_order(sub_order_id, shipper_id, proof_of_delivery="photo.jpg")

    return _ship
