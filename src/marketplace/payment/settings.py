"""Gateway credentials and endpoints, read from the environment.

Defaults point at the public sandboxes so development works without any
configuration.
"""

import os
from dataclasses import dataclass

VNPAY_SANDBOX_URL = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
MOMO_SANDBOX_ENDPOINT = "https://test-payment.momo.vn/v2/gateway/api/create"


@dataclass(frozen=True)
class VNPaySettings:
    tmn_code: str
    hash_secret: str
    url: str
    return_url: str

    @classmethod
    def from_env(cls) -> "VNPaySettings":
        return cls(
            tmn_code=os.environ.get("VNPAY_TMN_CODE", "DEMO0001"),
            hash_secret=os.environ.get("VNPAY_HASH_SECRET", "vnpay-dev-secret"),
            url=os.environ.get("VNPAY_URL", VNPAY_SANDBOX_URL),
            return_url=os.environ.get("VNPAY_RETURN_URL", "http://localhost:8000/payments/vnpay/return"),
        )


@dataclass(frozen=True)
class MoMoSettings:
    partner_code: str
    access_key: str
    secret_key: str
    endpoint: str
    redirect_url: str
    ipn_url: str

    @classmethod
    def from_env(cls) -> "MoMoSettings":
        return cls(
            partner_code=os.environ.get("MOMO_PARTNER_CODE", "MOMODEV"),
            access_key=os.environ.get("MOMO_ACCESS_KEY", "momo-dev-access"),
            secret_key=os.environ.get("MOMO_SECRET_KEY", "momo-dev-secret"),
            endpoint=os.environ.get("MOMO_ENDPOINT", MOMO_SANDBOX_ENDPOINT),
            redirect_url=os.environ.get("MOMO_REDIRECT_URL", "http://localhost:8000/payments/momo/return"),
            ipn_url=os.environ.get("MOMO_IPN_URL", "http://localhost:8000/payments/momo/callback"),
        )


@dataclass(frozen=True)
class WalletSettings:
    secret: str

    @classmethod
    def from_env(cls) -> "WalletSettings":
        return cls(secret=os.environ.get("WALLET_SECRET", "wallet-dev-secret"))
