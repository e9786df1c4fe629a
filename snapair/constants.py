"""Shared sizes, timings, names and defaults used across the bridge."""

from __future__ import annotations

import enum

DEVICE_NAME = "SnapAirUnit"

ALIVE_CHARACTER = "."
REBOOT_PROMPTS = 10

STACK_BUFFER_1K0 = 1024
STACK_BUFFER_1K5 = 1536
STACK_BUFFER_2K0 = 2048
STACK_BUFFER_2K5 = 2560
STACK_BUFFER_3K0 = 3072
STACK_BUFFER_3K5 = 3584
STACK_BUFFER_4K0 = 4096
STACK_BUFFER_4K5 = 4608
STACK_BUFFER_5K0 = 5120
STACK_BUFFER_5K5 = 5632

TASK_BUFFER_1K0 = 1024
TASK_BUFFER_1K5 = 1536
TASK_BUFFER_2K0 = 2048
TASK_BUFFER_2K5 = 2560
TASK_BUFFER_3K0 = 3072
TASK_BUFFER_3K5 = 3584
TASK_BUFFER_4K0 = 4096
TASK_BUFFER_4K5 = 4608
TASK_BUFFER_5K0 = 5120
TASK_BUFFER_5K5 = 5632

TIME_5_MS = 5
TIME_10_MS = 10
TIME_20_MS = 20
TIME_50_MS = 50
TIME_100_MS = 100
TIME_200_MS = 200
TIME_500_MS = 500
TIME_ONE_SECOND_IN_MS = 1000
TIME_TWO_SECOND_IN_MS = 2000

TTL_BUF_BASIC_SIZE = 512
STR_BUFFER_LEN = 256
STR_IP_LEN = 17

# Wi-Fi access point addressing: 192.168.<segment>.1/255
WIFI_AP_IP_A = 192
WIFI_AP_IP_B = 168
WIFI_AP_IP_D = 1
WIFI_AP_IP_MASK = 255

WIFI_SSID_LENGTH = 16
WIFI_SSID_EXT_LENGTH = 32
WIFI_PASS_LENGTH = 16

SPP_SERVER_NAME = DEVICE_NAME
SPP_DEVICE_NAME = DEVICE_NAME

MSP_UART_BAUDRATE = 115200
MSP_RX_BUF_SIZE = TTL_BUF_BASIC_SIZE * 2
MSP_TX_BUF_SIZE = TTL_BUF_BASIC_SIZE * 4
MSP_RX_EVENT_SIZE = 10

CONSOLE_PROMPT = DEVICE_NAME
CONSOLE_PROMPT_YES = "yes"

TELLO_RESPONSE_OK = "ok"
TELLO_RESPONSE_ERR = "error"

EVT_STACK_SIZE = STACK_BUFFER_3K0
EVT_QUEUE_SIZE = 5

CHANNEL_TAG_LENGTH = 8

RESTFUL_API_MAX_URI_HANDLERS = 15
RESTFUL_API_RESPONSE_OK = TELLO_RESPONSE_OK
RESTFUL_API_RESPONSE_INVALID = "invalid"
RESTFUL_API_RESPONSE_ERR = TELLO_RESPONSE_ERR

UDP_RECEIVE_TIMEOUT_S = 10


class PassThrough(enum.Enum):
    """How serial traffic is forwarded to the network."""

    UART = "uart"
    HY = "hy"
    MSP = "msp"


DEFAULT_PASS_THROUGH = PassThrough.MSP

# Logger names of the software components.
MODULE_EVT_PROC = "evt"
MODULE_SPIFFS = "ffs"
MODULE_CMD_NVS = "nvs"
MODULE_CMD_SAU = "sau"
MODULE_FACTORY_SETTING = "fac"
MODULE_CMD_UDP = "udp"
MODULE_LED_BLINK = "led"
MODULE_KEY_MODE = "key"
MODULE_UART = "ttl"
MODULE_WIFI_AP = "sap"
MODULE_WIFI_STA = "sta"
MODULE_BT_SPP = "spp"
MODULE_MODE = "mod"
MODULE_HTTP = "http"
MODULE_UDP_SRV = "usrv"
MODULE_UDP_CLT = "uclt"
MODULE_MSP_PROTO = "msp"
MODULE_TELLO_PROTO = "tel"
MODULE_HY_PROTO = "hy"
MODULE_CONSOLE = "cons"


def time_diff_ms(prev: int, curr: int) -> int:
    """Milliseconds between two microsecond timestamps, truncated toward zero."""
    delta = curr - prev
    whole = abs(delta) // 1000
    return whole if delta >= 0 else -whole