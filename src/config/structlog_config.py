import logging
import sys

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder

from config import settings


def configure_logging(
    level: str = settings.LOG_LEVEL,
    json_logs: bool = settings.JSON_LOGS,
) -> None:
    """
    Configura structlog sobre o logging da stdlib.
     - `json_logs` ativa JSONRenderer (produção).
     - Caso contrário, ConsoleRenderer colorido para dev.
    Deve ser chamado na inicialização, antes de criar o container.
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,     # request_id, group_id etc.
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    final_processor = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *pre_chain,
            CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.MODULE,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=final_processor,
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx loga cada request em INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.captureWarnings(True)
