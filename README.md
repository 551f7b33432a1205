# tickerflow

tickerflow is a library for following live cryptocurrency prices and keeping
recent history in memory. It reads the Coinbase ticker feed and stores every
tick in an in-memory log. From that log it works out moving averages and a trend
slope, and it turns the results into chart-ready datasets. It also includes a
small websocket server and client that pass text between threads and
connections.

## What it covers

- **Models** (`tickerflow.models`)
  - Data sources: `Datasource`.
  - Symbols: `SymbolCommon` and `SymbolCoinbase`. `SymbolCoinbase.from_product_id`
    maps a product id such as `"BTC-USD"` to a symbol. `to_string_coinbase()`
    goes the other way.
  - Calculations: `CalculationId`. Its `value()` method gives the window size.
  - Tick records: `TickerCommon`, `TickerCoinbase` and `TickerCalc`.
    `TickerCoinbase.from_json` parses a feed message.
  - Chart series: `ChartDataset` and `ChartTimeSeries`. Both turn into JSON-ready
    dicts through `to_json()`.
  - Messages: `Insert`, `Ping`, `ChartMultiRequest` and `ChartSinceRequest`. The
    two request types carry a `concurrent.futures.Future` as their reply.
  - Error: `UniversalError`.
- **Event log** (`tickerflow.event_log.EventLog`)
  - Holds ticks and calculation results, newest first. The log is not bounded
    and keeps every entry pushed into it.
  - `calculate_moving_avg_n` computes moving averages.
    `calculate_diff_slope` computes the slope of a calculation series. The slope
    is scaled by 10 and clamped to ±10.
  - `chart_since` builds chart datasets for each symbol, with an optional
    `since` time and a per-dataset `limit`.
  - `record_batch` returns the price log as a `(dtg, product_id, price)` table.
  - `query_sql_all`, `query_sql_for_chart` and `calc_with_sql` run SQL over the
    price log through an in-memory SQLite table named `t_one`.
  - `write_csv(directory)` writes the log to a new CSV file and returns its path.
  - `format_table(columns, rows)` renders a table as bordered text.
- **Event book** (`tickerflow.event_book.EventBook`)
  - Keeps one `EventLog` for each `Datasource` and creates it on first use.
  - All access goes through one lock. `read()` is a context manager that yields
    a read-only view of the logs.
- **Calculations** (`tickerflow.calculation.refresh_calculations`)
  - Computes the following for one symbol:
    - the 10-, 100- and 1000-tick moving averages;
    - the 100/1000 difference;
    - the slope of that difference, when there are enough values.
  - Stores the results in the book and returns them.
  - Raises `KeyError` when the book has no log for the source.
- **Coinbase feed** (`tickerflow.coinbase_feed`)
  - `subscribe_message()` builds the subscription request. `parse_packet()`
    decodes a packet.
  - `feed_url()` reads `COINBASE_URL` and falls back to the public exchange feed.
  - `process_messages(ws, tx_db)` puts each ticker on `tx_db` as an `Insert`.
    It raises `HeartbeatReceived` if a heartbeat packet arrives.
  - `connect(tx_db)` opens the feed and processes it until the connection
    closes.
  - `run(tx_db)` does the same on a background thread.
- **Commands** (`tickerflow.commands`): `Shutdown`, `StartPing` and
  `Broadcast(message)`, which are put on a `queue.Queue` to steer the server or
  the client.
- **Broadcast server** (`tickerflow.broadcast_server.BroadcastServer`)
  - Listens on `127.0.0.1:3012` by default and replies to each text frame from a
    client with `"server rcvd: <text>"`.
  - `broadcast(message)` sends text to every client. `Broadcast` commands do
    the same.
  - `Shutdown` closes the clients after a delay. `stop()` ends the server.
- **Broadcast client** (`tickerflow.broadcast_client.BroadcastClient`)
  - Connects when it is created.
  - `run()` reads text frames until the connection closes. `received()` returns
    them.
  - `ping()` sends a series of pings and `shutdown()` closes the connection.
    `StartPing` and `Shutdown` commands do the same.
- **Config and heartbeat**
  - `tickerflow.config.init(package_name)` loads a `.env` file, sets up logging
    and returns the path it tried.
  - `tickerflow.heartbeat.start_heartbeat(tx)` puts a `Ping` on a queue every 10
    seconds until its `stop` event is set.

## Using the event log

```python
from datetime import datetime, timezone

from tickerflow.event_log import EventLog
from tickerflow.models import CalculationId, Datasource, SymbolCommon, TickerCommon

log = EventLog()
when = datetime(1996, 12, 20, 0, 39, 57, tzinfo=timezone.utc)
for price in (10.0, 10.0, 30.0, 30.0):
    log.push_log(TickerCommon(source=Datasource.COINBASE, symbol=SymbolCommon.BTC_USD,
                              price=price, dtg=when))

avg = log.calculate_moving_avg_n(CalculationId.MOVING_AVG_0010, SymbolCommon.BTC_USD)
print(avg.val)  # 20.0
```

A moving average looks at the newest entries up to the calculation's window
(`CalculationId.value()`) and averages the prices of the requested symbol among
them. If no entry matches, the value is NaN. `calculate_diff_slope` raises
`EventLogError` when it has fewer than two source values.

## Configuration

`tickerflow.config.init(package_name)` reads `CONFIG_LOCATION`, which must be
`docker` or `not_docker` and defaults to `not_docker`.

- With `docker`, it loads `.env` from the working directory.
- With `not_docker`, it loads `<package_name>/.env`.

Variables that are already set are not overridden. It then prints
`ENV_FILE_VERSION` and configures logging at the level named by `LOG_LEVEL`,
which defaults to `ERROR`.

## What it does not do

- There is no command-line program. The pieces are wired together in your own
  code.
- There is no HTTP server or chart web page. Chart data comes back as
  `ChartDataset` objects, and the broadcast server sends whatever text you give
  it.
- No store answers `ChartMultiRequest` or `ChartSinceRequest`. These are
  message types only.
- Only the Coinbase feed is read. There is no reader for other data sources.
- Nothing is persisted. The event log lives in memory, and `write_csv` is the
  only export.

## Running the tests

Install the package with its `test` extra, then run `pytest` from the project root.