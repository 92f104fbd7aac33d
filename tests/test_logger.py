import io

from models.enums import LogCategory, LogLevel
from utils.logger import Logger, configure_logger, get_category_logger, get_logger


def make_logger(min_level=LogLevel.DEBUG):
    stream = io.StringIO()
    return Logger(min_level=min_level, use_colors=False, stream=stream), stream


def test_message_with_tree_details():
    logger, stream = make_logger()

    logger.info(LogCategory.CONTROL, "Fan level changed", temperature="55.0°C", change="20% → 50%")

    lines = stream.getvalue().splitlines()
    assert "CONTROL" in lines[0]
    assert lines[0].endswith("✓ Fan level changed")
    assert lines[1].strip() == "├─ temperature: 55.0°C"
    assert lines[2].strip() == "└─ change: 20% → 50%"


def test_min_level_filters():
    logger, stream = make_logger(LogLevel.WARN)

    logger.debug(LogCategory.SENSOR, "Temperature source failed")
    logger.info(LogCategory.SENSOR, "Reading")
    logger.warn(LogCategory.SENSOR, "No plausible temperature source, using fallback")

    output = stream.getvalue()
    assert "Reading" not in output
    assert "failed" not in output
    assert "⚠ No plausible temperature source" in output


def test_bound_logger_keeps_category():
    logger, stream = make_logger()
    fan_log = logger.for_category(LogCategory.FAN)

    fan_log.error("PWM write failed", pin=14)
    fan_log.with_category(LogCategory.HARDWARE).info("GPIO pin released")

    lines = stream.getvalue().splitlines()
    assert "FAN" in lines[0] and "✗ PWM write failed" in lines[0]
    assert lines[1].strip() == "└─ pin: 14"
    assert "HARDWARE" in lines[2]


def test_exc_info_appends_traceback():
    logger, stream = make_logger()

    try:
        raise ValueError("bad reading")
    except ValueError:
        logger.error(LogCategory.SENSOR, "Unexpected failure", exc_info=True)

    assert "ValueError: bad reading" in stream.getvalue()


def test_colors_wrap_output():
    stream = io.StringIO()
    Logger(use_colors=True, stream=stream).info(LogCategory.SYSTEM, "Starting")

    assert "\033[" in stream.getvalue()


def test_configure_logger_keeps_singleton():
    original = get_logger()
    bound = get_category_logger(LogCategory.CONFIG)
    stream = io.StringIO()

    configure_logger(LogLevel.INFO, use_colors=False, stream=stream)
    bound.info("Configuration loaded")

    assert get_logger() is original
    assert get_logger().min_level == LogLevel.INFO
    assert "Configuration loaded" in stream.getvalue()
