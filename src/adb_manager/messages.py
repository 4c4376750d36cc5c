"""User-facing message catalog.

Messages returned across the daemon boundary are looked up here so the CLI
(or any other front end) can show them as-is. English is the fallback for
unknown locales and missing keys.
"""

from __future__ import annotations

from typing import Any

DEFAULT_LOCALE = "en"

CATALOGS: dict[str, dict[str, str]] = {
    "en": {
        "invalid_host": "Invalid address format. Enter a valid IP address or hostname.",
        "invalid_pairing_code": "Invalid pairing code format. Enter the 6-digit code.",
        "invalid_port": "Invalid port: {port}. Use a number between 1 and 65535.",
        "pair_connection": (
            "Unable to connect to the device. Check that:\n"
            "1. The device is on the same network\n"
            "2. The IP address is correct\n"
            "3. Wireless debugging is enabled on the device"
        ),
        "pair_auth": "Pairing failed. Check that the pairing code is correct and not expired.",
        "pair_timeout": "Connection timed out, please retry.",
        "pair_failed": "Pairing failed: {reason}",
        "pair_success": "Paired and connected",
        "connect_refused": (
            "Connection refused. Make sure the device is paired and TCP/IP debugging is enabled."
        ),
        "connect_timeout": "Connection timed out. Check the network connection.",
        "connect_unreachable": "Device unreachable. Check the IP address and network connection.",
        "connect_failed": "Connection failed: {reason}",
        "connect_success": "Connected",
        "network_unavailable": "Cannot determine local network",
        "unknown_action": "Unknown action: {action}",
        "command_failed": "Command failed with code {code}",
        "tool_not_found": "{tool} not found",
        "spawn_failed": "Failed to start {tool}: {reason}",
        "session_active": "A mirroring session is already running for {device_id}",
        "invalid_quality": "Invalid quality: {quality}",
        "invalid_request": "Invalid request: {reason}",
        "internal": "Internal error: {reason}",
    },
    "zh": {
        "invalid_host": "地址格式错误，请输入正确的IP地址或域名",
        "invalid_pairing_code": "配对码格式错误，请输入6位数字",
        "invalid_port": "端口无效：{port}，请输入 1 到 65535 之间的数字",
        "pair_connection": (
            "无法连接到设备，请检查：\n1. 设备在同一网络中\n2. IP地址正确\n3. 设备已启用无线调试"
        ),
        "pair_auth": "配对失败，请检查配对码是否正确且未过期",
        "pair_timeout": "连接超时，请重试",
        "pair_failed": "配对失败：{reason}",
        "pair_success": "配对并连接成功",
        "connect_refused": "连接被拒绝，请确保设备已配对并启用TCP/IP调试",
        "connect_timeout": "连接超时，请检查网络连接",
        "connect_unreachable": "无法访问设备，请检查IP地址和网络连接",
        "connect_failed": "连接失败：{reason}",
        "connect_success": "连接成功",
        "network_unavailable": "无法获取本地网络信息",
        "unknown_action": "未知操作：{action}",
        "command_failed": "命令执行失败，退出码 {code}",
        "tool_not_found": "未找到 {tool}",
        "spawn_failed": "无法启动 {tool}：{reason}",
        "session_active": "设备 {device_id} 已有正在运行的投屏会话",
        "invalid_quality": "无效的画质：{quality}",
        "invalid_request": "请求无效：{reason}",
        "internal": "内部错误：{reason}",
    },
}

_locale = DEFAULT_LOCALE


def set_locale(locale: str) -> None:
    """Select the catalog used by :func:`message`."""
    global _locale
    _locale = locale if locale in CATALOGS else DEFAULT_LOCALE


def get_locale() -> str:
    return _locale


def message(key: str, **kwargs: Any) -> str:
    """Look up and format a message in the active locale."""
    template = CATALOGS.get(_locale, {}).get(key) or CATALOGS[DEFAULT_LOCALE][key]
    return template.format(**kwargs) if kwargs else template
