"""Domain initialization and configuration.

Marketplace bounded context: multi-seller order fulfillment. A cart checkout
becomes one Order split into seller-scoped SubOrders; stock is reserved
against a shared per-variant pool, payment callbacks are reconciled, and
every SubOrder is driven through delivery and returns. CQRS aggregates
throughout: state is the current row, events are notifications.
"""

from protean.domain import Domain

from marketplace.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
marketplace = Domain(name="marketplace")
