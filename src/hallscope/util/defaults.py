# -*- coding: utf-8 -*-

import tempfile

DEFAULT_HOST_ADDR = "127.0.0.1"
DEFAULT_PORT = 8860  # msg port, notifications on DEFAULT_PORT + 1
DEFAULT_RETRIES = 3  # Number of times to retry a failed req operation
DEFAULT_TIMEOUT = 5  # seconds
DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
TEMP_DIR = tempfile.gettempdir()
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err comms

# sample stream
NUM_CHANNELS = 9
POLL_INTERVAL = 1.0  # seconds
MAX_BUFFER_LENGTH = 10000
KEY_TOLERANCE = 0.0  # strict monotonic, duplicates dropped
STALL_THRESHOLD = 5  # consecutive poll failures (without push arrivals)
KEY_PERIOD = 360.0  # degrees per revolution; 0 for time-keyed streams
# width of the zones next to 360 and 0 in which a drop starts a new revolution
REVOLUTION_WRAP_SPAN = 90.0

# device / run form defaults
DEFAULT_LASER_ADDR = "192.168.2.3:43002"
DEFAULT_HALL_DISTANCE_MM = 20.0
DEFAULT_LASER_DISTANCE_MM = 428.0
DEFAULT_MOTOR_SPEED_RPM = 0.5
DEFAULT_STEP_ANGLE = 1.0
DEFAULT_CIRCLE_PULSE = 15000

# host side
HOST_BUFFER_SIZE = 10000
FETCH_BATCH_MAX = 1000
