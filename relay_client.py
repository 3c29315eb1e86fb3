#!/usr/bin/env python3

import requests
import json
import argparse
import time


class KickRelayClient:
    def __init__(self, base_url="http://localhost:3000"):
        self.base_url = base_url

    def start(self, twitch_username, kick_stream_key, quality="auto"):
        """Start relaying a Twitch channel to Kick"""
        data = {
            "twitchUsername": twitch_username,
            "kickStreamKey": kick_stream_key,
            "quality": quality,
        }
        response = requests.post(f"{self.base_url}/api/stream", json=data)
        return response.status_code, response.json()

    def stop(self):
        """Stop the active relay"""
        response = requests.delete(f"{self.base_url}/api/stream")
        return response.status_code, response.json()

    def status(self):
        """Get relay status, metrics and recent ffmpeg output"""
        response = requests.get(f"{self.base_url}/api/stream")
        return response.json()

    def get_health(self):
        response = requests.get(f"{self.base_url}/health")
        return response.json()

    def format_uptime(self, seconds):
        seconds = int(seconds or 0)
        hours, remainder = divmod(seconds, 3600)
        minutes, secs = divmod(remainder, 60)
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"

    def print_status(self, log_lines=10):
        """Print formatted relay status"""
        status = self.status()
        info = status.get("sessionInfo")
        metrics = status.get("latestMetrics")

        print("=" * 60)
        print("KICK RELAY - STATUS")
        print("=" * 60)
        if status["active"] and info:
            print(f"Channel: {info['channel']} ({info['quality']})")
            print(f"Started: {info['startedAt']}")
            print(f"Uptime: {self.format_uptime(info['uptimeSeconds'])}")
        else:
            print("Relay: inactive")

        if metrics:
            print(f"FPS: {metrics['fps']}  Bitrate: {metrics['bitrate']}  "
                  f"Speed: {metrics['speed']}  Time: {metrics['time']}")
        print()

        logs = status.get("recentLogs") or []
        if logs:
            print("RECENT LOGS:")
            print("-" * 60)
            for line in logs[-log_lines:]:
                print(f"  {line}")


def main():
    parser = argparse.ArgumentParser(description="kick-relay Client")
    parser.add_argument("--base-url", default="http://localhost:3000",
                        help="Base URL of the relay server")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    start_parser = subparsers.add_parser("start", help="Start relaying a Twitch channel")
    start_parser.add_argument("twitch_username", help="Twitch channel name")
    start_parser.add_argument("kick_stream_key", help="Kick stream key")
    start_parser.add_argument("--quality", default="auto",
                              choices=["auto", "source", "720p60", "720p", "480p", "360p", "160p"],
                              help="Source quality")

    subparsers.add_parser("stop", help="Stop the active relay")

    status_parser = subparsers.add_parser("status", help="Show relay status")
    status_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    subparsers.add_parser("health", help="Check health")

    monitor_parser = subparsers.add_parser("monitor", help="Monitor in real-time")
    monitor_parser.add_argument("--interval", type=float, default=5.0,
                                help="Seconds between refreshes")

    args = parser.parse_args()

    client = KickRelayClient(args.base_url)

    try:
        if args.command == "start":
            code, result = client.start(args.twitch_username, args.kick_stream_key, args.quality)
            if code == 200:
                print(result["message"])
            else:
                print(f"Error ({code}): {result.get('detail')}")

        elif args.command == "stop":
            code, result = client.stop()
            if code == 200:
                print(result["message"])
            else:
                print(f"Error ({code}): {result.get('detail')}")

        elif args.command == "status":
            if args.json:
                print(json.dumps(client.status(), indent=2))
            else:
                client.print_status()

        elif args.command == "health":
            print(json.dumps(client.get_health(), indent=2))

        elif args.command == "monitor":
            print("Monitoring kick-relay (Press Ctrl+C to stop)...")
            try:
                while True:
                    client.print_status()
                    time.sleep(args.interval)
                    print("\n" + "="*60 + "\n")
            except KeyboardInterrupt:
                print("\nMonitoring stopped.")

        else:
            parser.print_help()

    except requests.RequestException as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
