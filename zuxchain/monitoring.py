# zuxchain/monitoring.py
import errno
import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)

# Create a threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True  # Allow reusing the address immediately
    daemon_threads = True

class Monitor:
    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Initialize variables for swaps-per-second calculation
        self.last_time = time.time()
        self.last_swap_count = 0

        # Create a new, isolated registry for this simulation
        self.registry = CollectorRegistry()

        # Register metrics with the new registry
        self.block_counter = Counter('zux_blocks_total', 'Total number of blocks mined', ['block_type'], registry=self.registry)
        self.swap_counter = Counter('zux_swaps_total', 'Total number of swaps executed', ['direction'], registry=self.registry)
        self.rejected_counter = Counter('zux_rejected_trades_total', 'Trade attempts skipped by the driver', ['reason'], registry=self.registry)
        self.block_latency = Histogram('zux_block_mining_seconds', 'Time to mine and append a block', registry=self.registry)
        self.chain_height = Gauge('zux_chain_height', 'Current height of the chain', registry=self.registry)
        self.sps = Gauge('zux_swaps_per_second', 'Swaps per second since the last update', registry=self.registry)
        self.amm_price = Gauge('amm_price_usdz_per_zux', 'Current pool price', registry=self.registry)
        self.amm_k = Gauge('amm_invariant_k', 'Constant product k', registry=self.registry)
        self.amm_reserve = Gauge('amm_reserve', 'Pool reserve', ['currency'], registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def start_server(self):
        """Manually creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                # Create server with address reuse enabled
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)

                # Enable SO_REUSEADDR at socket level as well
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == errno.EADDRINUSE:
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

    def update(self, snapshot):
        """Refresh gauges from a SimulationSnapshot."""
        self.chain_height.set(snapshot.chain_height)

        now = time.time()
        elapsed = now - self.last_time
        if elapsed > 0:
            self.sps.set((snapshot.swap_count - self.last_swap_count) / elapsed)
        self.last_swap_count = snapshot.swap_count
        self.last_time = now

        if snapshot.pool is not None:
            self.amm_price.set(float(snapshot.pool.price))
            self.amm_k.set(float(snapshot.pool.k))
            self.amm_reserve.labels(currency='ZUX').set(float(snapshot.pool.reserve_a))
            self.amm_reserve.labels(currency='USDZ').set(float(snapshot.pool.reserve_b))

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_block(self, block_type: str, latency: float):
        self.block_counter.labels(block_type=block_type).inc()
        self.block_latency.observe(latency)

    def record_swap(self, direction: str):
        self.swap_counter.labels(direction=direction).inc()

    def record_rejection(self, reason: str):
        self.rejected_counter.labels(reason=reason).inc()
