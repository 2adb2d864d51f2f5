# Author: Omi Shrestha

import asyncio
import time

from alerts import AlertDispatcher
from ble_session import ConnectionSession
from ble_utils import SessionError
from logging_config import configure_logging
from reading_history import summarize


def to_fahrenheit(celsius):
    return celsius * 9 / 5 + 32


def format_temperature(celsius, unit_c=True):
    if celsius is None:
        return "--"
    if unit_c:
        return f"{celsius:.1f}°C"
    return f"{to_fahrenheit(celsius):.1f}°F"


def format_reading(reading, unit_c=True):
    timestamp = time.strftime("%H:%M:%S", time.localtime(reading.observed_at))
    moisture = reading.moisture_state.value.upper()
    return f"[{timestamp}] {moisture:<8} {format_temperature(reading.temperature_celsius, unit_c)}"


def prompt_alert(message):
    """Foreground alert: ring the terminal bell and print a banner."""
    print("\a")
    print("!" * 50)
    print(f"  ALERT: {message}")
    print("!" * 50)


async def choose_device(candidates):
    """Let the user pick one of several sensors with the same name."""
    print(f"\nFound {len(candidates)} devices:")
    for idx, device in enumerate(candidates, 1):
        print(f"  {idx}. {device.name} - MAC: {device.address}")

    while True:
        try:
            choice = await asyncio.to_thread(input, f"\nSelect device (1-{len(candidates)}): ")
            choice_idx = int(choice) - 1
            if 0 <= choice_idx < len(candidates):
                return candidates[choice_idx]
            print("Invalid selection. Try again.")
        except ValueError:
            print("Please enter a number.")
        except (EOFError, KeyboardInterrupt):
            print("\nSelection cancelled.")
            return None


def print_status(session, unit_c):
    status = session.status()
    print(f"\n[STATUS] {status.state.value}")
    if status.failure_reason:
        print(f"  Reason: {status.failure_reason}")
    if status.device_address:
        print(f"  Device: {status.device_name} ({status.device_address})")
    print(f"  Mode: {status.mode.value}")
    latest = session.history.latest()
    if latest is not None:
        print(f"  Latest: {format_reading(latest, unit_c)}")
        print(f"  Next update in: {int(status.next_update_in)}s")
    else:
        print("  No readings received yet")
    print()


def print_history(session, unit_c, limit=20):
    readings = session.history.snapshot()
    print(f"\n[HISTORY] {len(readings)}/{session.history.capacity} readings")
    if not readings:
        print("  No readings received yet\n")
        return
    for reading in readings[-limit:]:
        print(f"  {format_reading(reading, unit_c)}")
    summary = summarize(readings)
    print(f"  Wet readings: {summary.wet_count}")
    if summary.mean_temperature is not None:
        print(f"  Temperature min/avg/max: "
              f"{format_temperature(summary.min_temperature, unit_c)} / "
              f"{format_temperature(summary.mean_temperature, unit_c)} / "
              f"{format_temperature(summary.max_temperature, unit_c)}")
    print()


async def main():
    """Main application entry point."""
    configure_logging()

    dispatcher = AlertDispatcher(prompt=prompt_alert, is_foreground=lambda: True)
    session = ConnectionSession(dispatcher=dispatcher, choose_device=choose_device)
    display = {"unit_c": True}

    session.subscribe("reading", lambda r: print(f"[READING] {format_reading(r, display['unit_c'])}"))
    session.subscribe("status", lambda s: print(f"[STATUS] {s.state.value} ({s.mode.value})"))

    print("\n" + "="*50)
    print("MOISTURE SENSOR MONITOR")
    print("="*50)
    print("\nCommands:")
    print("  - 'connect' to find and connect to the sensor")
    print("  - 'mode' to toggle periodic/realtime reporting")
    print("  - 'status' to view connection status and latest reading")
    print("  - 'history' to view recent readings")
    print("  - 'unit' to switch between °C and °F")
    print("  - 'disconnect' to release the sensor")
    print("  - 'quit' to exit")
    print()

    try:
        while True:
            try:
                command = await asyncio.to_thread(input, "Enter command: ")
            except (EOFError, KeyboardInterrupt):
                print("\nExiting...")
                break

            command = command.strip().lower()
            if command == 'quit':
                break

            try:
                if command == 'connect':
                    print("Connecting...")
                    await session.connect()
                    print("Connected!")
                elif command == 'mode':
                    mode = await session.toggle_mode()
                    print(f"Mode: {mode.value}")
                elif command == 'status':
                    print_status(session, display['unit_c'])
                elif command == 'history':
                    print_history(session, display['unit_c'])
                elif command == 'unit':
                    display['unit_c'] = not display['unit_c']
                    print(f"Units: {'°C' if display['unit_c'] else '°F'}")
                elif command == 'disconnect':
                    await session.disconnect()
                    print("Disconnected.")
                elif command:
                    print(f"Unknown command: {command}")
            except SessionError as e:
                print(f"[ERROR] {e}")
    finally:
        await session.dispose()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
