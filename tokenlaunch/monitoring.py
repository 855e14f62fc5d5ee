# tokenlaunch/monitoring.py
import time
import socket
from prometheus_client import Counter, Gauge, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

from tokenlaunch.events import Event

logger = logging.getLogger(__name__)


# Create a threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True


class Monitor:
    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry per launch
        self.registry = CollectorRegistry()

        self.purchases = Counter('launch_purchases_total', 'Completed purchases', registry=self.registry)
        self.tokens_sold = Counter('launch_tokens_sold_total', 'Token base units sold', registry=self.registry)
        self.currency_raised = Counter('launch_currency_raised_total', 'Currency raised, fees excluded', registry=self.registry)
        self.refund_failures = Counter('launch_refund_failures_total', 'Refunds refused by buyers', registry=self.registry)
        self.transfers_recorded = Counter('vesting_transfers_recorded_total', 'Transfers recorded against vesting schedules', registry=self.registry)
        self.schedules_created = Counter('vesting_schedules_created_total', 'Vesting schedules created', registry=self.registry)
        self.phase_changes = Counter('launch_phase_changes_total', 'Phase transitions', registry=self.registry)
        self.remaining_supply = Gauge('launch_remaining_supply', 'Distribution supply left', registry=self.registry)
        self.total_minted = Gauge('launch_total_minted', 'Tokens minted against the cap', registry=self.registry)
        self.phase = Gauge('launch_phase', 'Current launch phase', registry=self.registry)
        self.paused = Gauge('launch_paused', '1 while the distribution is paused', registry=self.registry)

    def observe(self, event: Event):
        """Event subscriber: count committed notifications."""
        if event.name == 'TokensPurchased':
            self.purchases.inc()
            self.tokens_sold.inc(event['amount'])
            self.currency_raised.inc(event['total_cost'])
        elif event.name == 'RefundFailed':
            self.refund_failures.inc()
        elif event.name == 'TransferRecorded':
            self.transfers_recorded.inc()
        elif event.name == 'VestingScheduleCreated':
            self.schedules_created.inc()
        elif event.name == 'PhaseChanged':
            self.phase_changes.inc()
            self.phase.set(event['new_phase'])

    def update(self, controller):
        supply = controller.get_supply_info()
        self.remaining_supply.set(supply['remaining_distribution_supply'])
        self.total_minted.set(supply['total_minted'])
        self.phase.set(int(controller.get_phase()))
        self.paused.set(1 if controller.is_paused() else 0)

    def start_server(self):
        """Manually creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")
