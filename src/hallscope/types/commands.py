"""Command and event names understood by the host control process.

The strings are part of the wire protocol and must not change.
"""

import types

CONSTS = types.SimpleNamespace()

# general comms (host housekeeping)
CONSTS.COMMS = types.SimpleNamespace()
CONSTS.COMMS.PING = "ping"
CONSTS.COMMS.PONG = "pong"
CONSTS.COMMS.SHUTDOWN = "shutdown"
CONSTS.COMMS.GET_NOTIF_PORT = "get_notif_port"

# device lifecycle & discovery
CONSTS.DEVICE = types.SimpleNamespace()
CONSTS.DEVICE.GET_PORT = "get_port"
CONSTS.DEVICE.INIT = "init_device"
CONSTS.DEVICE.DEINIT = "deinit_device"

# motor
CONSTS.MOTOR = types.SimpleNamespace()
CONSTS.MOTOR.SET_SPEED = "set_motor_speed"
CONSTS.MOTOR.SET_SINGLE_ANGLE = "set_motor_single_angle"
CONSTS.MOTOR.SET_SINGLE_CIRCLE_PULSE = "set_motor_single_circle_pulse"
CONSTS.MOTOR.GET_ANGLE = "get_motor_angle"
CONSTS.MOTOR.SET_CALIBRATED = "set_motor_calibrated"
CONSTS.MOTOR.START_U = "motor_start_u"
CONSTS.MOTOR.START_D = "motor_start_d"
CONSTS.MOTOR.STOP = "motor_stop"
CONSTS.MOTOR.START_ONE_CIRCLE = "motor_start_one_circle"
CONSTS.MOTOR.ROTATE_STEP = "rotate_motor"

# acquisition
CONSTS.WORK = types.SimpleNamespace()
CONSTS.WORK.START = "start_work"
CONSTS.WORK.STOP = "stop_work"
CONSTS.WORK.FETCH_HALL_DATA = "fetch_hall_data"

# push events (Notification.type)
CONSTS.EVENT = types.SimpleNamespace()
CONSTS.EVENT.HALL_RECV = "hall_recv"
CONSTS.EVENT.SERIAL_CHANGE = "serial_change"
CONSTS.EVENT.MESSAGE = "message"

MOTOR_COMMANDS = frozenset(vars(CONSTS.MOTOR).values())
DEVICE_CONFIG_COMMANDS = frozenset({CONSTS.DEVICE.INIT})
