# orderflow/shared/container.py
from dependency_injector import containers, providers

from orderflow.shared.config import settings
from orderflow.shared.cache import SingleFlightCache
from orderflow.shared.clock import SystemClock
from orderflow.adapters.persistence.database import Database
from orderflow.adapters.persistence.sql_order_repository import SqlOrderRepository
from orderflow.adapters.persistence.sql_catalog_repository import SqlCatalogRepository
from orderflow.adapters.storage.fake_storage import FakeObjectStorage
from orderflow.adapters.storage.s3_storage import S3ObjectStorage
from orderflow.adapters.storage.throttler import UploadThrottler
from orderflow.adapters.mail.smtp_mailer import SmtpMailer
from orderflow.adapters.realtime.registry import EventRegistry
from orderflow.adapters.realtime.publisher import RealtimePublisher

from orderflow.core.use_cases.submit_order import (
    CheckTransactionIdAvailability,
    ProcessPaymentUpload,
    ReplacePaymentScreenshot,
    SubmitOrder,
)
from orderflow.core.use_cases.update_order_status import UpdateOrderStatus
from orderflow.core.use_cases.list_orders import ListOrders
from orderflow.core.use_cases.catalog_popularity import GetAcceptedItemsSummary, GetCatalogWithPopularity
from orderflow.core.use_cases.dispatch_decision_emails import DecisionEmailDispatcher
from orderflow.core.use_cases.reconcile_uploads import ReconcileStaleUploads
from orderflow.worker.sweeper import MaintenanceSweeper


class Container(containers.DeclarativeContainer):
    """
    Dependency Injection Container.

    This declarative container defines the assembly instructions for the application.
    Every stateful adapter (database, throttler, registries, cache) is a Singleton
    so the API handlers, the background uploads and the sweeper share one instance.
    """

    # 1. Configuration
    # Wrapped in providers so tests can override them.
    admin_api_key = providers.Object(settings.ADMIN_API_KEY)
    mail_enabled = providers.Object(settings.MAIL_ENABLED)

    clock = providers.Singleton(SystemClock)

    # 2. Gateways (Infrastructure Adapters)

    database = providers.Singleton(
        Database,
        url=settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
    )

    order_repository = providers.Singleton(SqlOrderRepository, database=database)
    catalog_repository = providers.Singleton(SqlCatalogRepository, database=database)

    # Object storage: in-memory for local development, S3 in production
    object_storage = providers.Selector(
        providers.Object(settings.STORAGE_BACKEND.value),
        fake=providers.Singleton(FakeObjectStorage),
        s3=providers.Singleton(
            S3ObjectStorage,
            bucket=settings.AWS_BUCKET_NAME,
            region=settings.AWS_REGION,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            endpoint_url=settings.AWS_ENDPOINT_URL,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
            timeout_sec=settings.UPLOAD_TIMEOUT_SEC,
        ),
    )

    # One semaphore per process: at most UPLOAD_MAX_PARALLEL uploads in flight
    upload_throttler = providers.Singleton(
        UploadThrottler,
        storage=object_storage,
        max_concurrency=settings.UPLOAD_MAX_PARALLEL,
    )

    mailer = providers.Singleton(
        SmtpMailer,
        enabled=mail_enabled,
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        sender=settings.MAIL_FROM,
        username=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        use_ssl=settings.SMTP_USE_SSL,
        starttls=settings.SMTP_STARTTLS,
        timeout_sec=settings.MAIL_TIMEOUT_SEC,
    )

    # Realtime fan-out
    operator_registry = providers.Singleton(
        EventRegistry, name="operators", filter_by_account=False, queue_size=settings.SSE_QUEUE_SIZE
    )
    customer_registry = providers.Singleton(
        EventRegistry, name="customers", filter_by_account=True, queue_size=settings.SSE_QUEUE_SIZE
    )
    publisher = providers.Singleton(
        RealtimePublisher,
        operators=operator_registry,
        customers=customer_registry,
    )

    catalog_cache = providers.Singleton(SingleFlightCache, ttl_seconds=settings.CATALOG_CACHE_TTL_SEC)

    # 3. Use Cases (Application Logic)

    # Factory: New instance created for every request (stateless logic),
    # but with Singleton dependencies injected.

    submit_order_use_case = providers.Factory(
        SubmitOrder,
        repo=order_repository,
        publisher=publisher,
        clock=clock,
        max_total_items=settings.ORDER_MAX_TOTAL_ITEMS,
        email_domain=settings.ORDER_EMAIL_DOMAIN,
        max_image_bytes=settings.UPLOAD_MAX_BYTES,
    )

    process_payment_upload_use_case = providers.Factory(
        ProcessPaymentUpload,
        repo=order_repository,
        throttler=upload_throttler,
        storage=object_storage,
        publisher=publisher,
        clock=clock,
        folder=settings.STORAGE_FOLDER,
    )

    replace_payment_screenshot_use_case = providers.Factory(
        ReplacePaymentScreenshot,
        repo=order_repository,
        publisher=publisher,
        clock=clock,
        max_image_bytes=settings.UPLOAD_MAX_BYTES,
    )

    check_transaction_id_use_case = providers.Factory(
        CheckTransactionIdAvailability,
        repo=order_repository,
    )

    update_order_status_use_case = providers.Factory(
        UpdateOrderStatus,
        repo=order_repository,
        publisher=publisher,
        clock=clock,
    )

    list_orders_use_case = providers.Factory(
        ListOrders,
        repo=order_repository,
        max_limit=settings.ORDERS_PAGE_LIMIT,
    )

    catalog_use_case = providers.Factory(
        GetCatalogWithPopularity,
        catalog=catalog_repository,
        orders=order_repository,
        cache=catalog_cache,
        top_n=settings.BESTSELLER_TOP_N,
    )

    accepted_summary_use_case = providers.Factory(
        GetAcceptedItemsSummary,
        orders=order_repository,
    )

    # 4. Background Jobs

    dispatcher = providers.Singleton(
        DecisionEmailDispatcher,
        repo=order_repository,
        mailer=mailer,
        publisher=publisher,
        clock=clock,
        enabled=mail_enabled,
        batch_size=settings.DISPATCH_BATCH_SIZE,
        reclaim_after_sec=settings.DISPATCH_RECLAIM_AFTER_SEC,
    )

    reconciler = providers.Singleton(
        ReconcileStaleUploads,
        orders=order_repository,
        catalog=catalog_repository,
        publisher=publisher,
        clock=clock,
        stale_after_sec=settings.UPLOAD_STALE_AFTER_SEC,
    )

    sweeper = providers.Singleton(
        MaintenanceSweeper,
        dispatcher=dispatcher,
        reconciler=reconciler,
        interval_sec=settings.DISPATCH_INTERVAL_SEC,
    )


# Instantiate the container for global access (e.g. by FastAPI)
container = Container()
