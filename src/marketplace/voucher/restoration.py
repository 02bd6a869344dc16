"""Voucher usage bookkeeping inside a unit of work.

Callers hold the ``voucher:<code>`` locks for every code they pass.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.voucher.voucher import Voucher

logger = structlog.get_logger(__name__)


def redeem_vouchers(codes, user_id, order_id) -> None:
    repo = current_domain.repository_for(Voucher)
    for code in codes:
        voucher = repo.get_by_code(code)
        voucher.redeem(user_id, order_id)
        repo.add(voucher)
        logger.info("voucher_redeemed", code=voucher.code, order_id=str(order_id), used_count=voucher.used_count)


def restore_vouchers(codes, order_id) -> None:
    """Undo the usages ``order_id`` recorded. Unknown codes are skipped."""
    repo = current_domain.repository_for(Voucher)
    for code in dict.fromkeys(c.upper() for c in codes if c):
        voucher = repo.find_by_code(code)
        if voucher is None:
            logger.warning("voucher_missing_on_restore", code=code, order_id=str(order_id))
            continue
        if voucher.restore(order_id):
            repo.add(voucher)
            logger.info("voucher_restored", code=voucher.code, order_id=str(order_id), used_count=voucher.used_count)
