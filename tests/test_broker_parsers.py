"""
Test suite for the broker CSV parsers.
"""

from datetime import datetime, timezone

import pytest

from tradehub.brokers import (
    GenericCSVOptions, GenericCSVParser, InteractiveBrokersParser, MetaTraderParser,
    OptionType, TDAmeritradeParser
)
from tradehub.brokers.parsers.interactive_brokers import extract_trades_sections, parse_option_symbol
from tradehub.brokers.parsers.metatrader import lots_to_units, normalize_symbol, parse_mt_date
from tradehub.brokers.parsers.td_ameritrade import parse_description
from tradehub.core.models import AssetClass, OrderSide


class TestGenericCSVParser:
    """Header matched parsing with row level skips."""

    def test_parses_rows(self):
        content = (
            "Date,Symbol,Side,Quantity,Price,Fee,PnL,Order_ID\n"
            "2024-01-15 10:30:00,aapl,buy,10,$150.25,1.00,,A1\n"
            "01/16/2024,TSLA,sell,5,200,0.5,25.5,A2\n"
        )
        result = GenericCSVParser().parse(content)

        assert result.success is True
        assert result.total_rows == 2
        assert result.parsed_rows == 2
        first, second = result.trades
        assert first.symbol == 'AAPL'
        assert first.asset_class is AssetClass.STOCKS
        assert first.side is OrderSide.BUY
        assert first.entry_price == pytest.approx(150.25)
        assert first.entry_date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert first.external_id == 'A1'
        assert first.realized_pnl is None
        assert first.import_source == 'generic_csv'
        assert second.side is OrderSide.SELL
        assert second.realized_pnl == pytest.approx(25.5)

    def test_one_bad_row_in_ten(self):
        lines = ["symbol,quantity,price,date"]
        for day in range(1, 11):
            price = "abc" if day == 4 else "100"
            lines.append(f"MSFT,1,{price},2024-02-{day:02d}")

        result = GenericCSVParser().parse("\n".join(lines))

        assert result.success is True
        assert result.total_rows == 10
        assert result.parsed_rows == 9
        assert result.skipped_rows == 1
        assert result.warnings == ['Row 5: Invalid price "abc", skipping']
        assert result.errors == []

    def test_missing_quantity_row_skipped(self):
        lines = ["symbol,quantity,price,date"]
        lines += [f"AAPL,{'' if i == 7 else 5},100,2024-03-{i + 1:02d}" for i in range(10)]

        result = GenericCSVParser().parse("\n".join(lines))

        assert result.parsed_rows == 9
        assert result.skipped_rows == 1
        assert result.warnings == ['Row 9: Invalid quantity "", skipping']
        assert result.success is True

    def test_negative_quantity_is_sell(self):
        result = GenericCSVParser().parse("symbol,quantity,price,date\nNVDA,-3,400,2024-01-15")
        trade = result.trades[0]
        assert trade.side is OrderSide.SELL
        assert trade.quantity == 3

    def test_missing_symbol_skipped(self):
        result = GenericCSVParser().parse("symbol,quantity,price,date\n,1,100,2024-01-15\nAMZN,1,100,2024-01-15")
        assert result.parsed_rows == 1
        assert result.warnings == ['Row 2: Missing symbol, skipping']

    def test_missing_required_column(self):
        result = GenericCSVParser().parse("ticker,qty,date\nAAPL,1,2024-01-15")
        assert result.success is False
        assert result.trades == []
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Missing required column: Price (expected: price,")

    def test_all_rows_bad(self):
        result = GenericCSVParser().parse("symbol,quantity,price,date\nAAPL,0,100,2024-01-15")
        assert result.success is False
        assert result.errors == ['Failed to parse any trades from CSV']

    def test_custom_column_mapping(self):
        parser = GenericCSVParser(GenericCSVOptions(column_mapping={'symbol': ['Contract']}))
        parser.set_column_mapping(date='Filled At')

        result = parser.parse("Contract,Qty,Price,Filled At\nESH24,2,4800.25,2024-01-15")

        assert result.parsed_rows == 1
        assert result.trades[0].asset_class is AssetClass.FUTURES

    def test_skip_rows_shift_row_numbers(self):
        options = GenericCSVOptions(delimiter=';', skip_rows=1)
        result = GenericCSVParser(options).parse("Export\nsymbol;quantity;price;date\nAAPL;1;x;2024-01-15")
        assert result.warnings == ['Row 3: Invalid price "x", skipping']

    def test_broker_info(self):
        info = GenericCSVParser().get_broker_info()
        assert info.id == 'generic'
        assert set(info.supported_asset_classes) == set(AssetClass)


class TestTDAmeritradeParser:

    CONTENT = (
        "DATE,TRANSACTION ID,DESCRIPTION,QUANTITY,SYMBOL,PRICE,COMMISSION,AMOUNT\n"
        "01/15/2024,1001,BOUGHT +100 AAPL @150.00,100,AAPL,150.00,0.00,-15000.00\n"
        "01/16/2024,1002,ORDINARY DIVIDEND (AAPL),,AAPL,,,24.00\n"
        "01/17/2024,1003,SOLD -1 AAPL 100 21 JAN 22 150 CALL @1.50,1,AAPL,,0.65,149.35\n"
    )

    def test_parse_description_stock(self):
        info = parse_description("BOUGHT +100 AAPL @150.00")
        assert info.symbol == 'AAPL'
        assert info.side is OrderSide.BUY
        assert info.asset_class is AssetClass.STOCKS

    def test_parse_description_option(self):
        info = parse_description("SOLD -1 AAPL 100 21 JAN 22 150 CALL @1.50")
        assert info.symbol == 'AAPL'
        assert info.side is OrderSide.SELL
        assert info.asset_class is AssetClass.OPTIONS
        assert info.option_type is OptionType.CALL
        assert info.strike_price == 150.0
        assert info.expiration_date == "21 JAN 22"

    def test_parse_filters_non_trades(self):
        result = TDAmeritradeParser().parse(self.CONTENT)

        assert result.success is True
        assert result.total_rows == 2
        stock, option = result.trades
        assert stock.quantity == 100
        assert stock.entry_price == 150.0
        assert stock.fee_currency == 'USD'
        assert option.asset_class is AssetClass.OPTIONS
        assert option.side is OrderSide.SELL
        # price falls back to |amount / quantity|
        assert option.entry_price == pytest.approx(149.35)
        assert option.fee == pytest.approx(0.65)

    def test_no_trade_rows(self):
        content = "DATE,DESCRIPTION,QUANTITY,PRICE,AMOUNT\n01/16/2024,ORDINARY DIVIDEND,,,24.00\n"
        result = TDAmeritradeParser().parse(content)
        assert result.success is False
        assert result.errors == ['No trade transactions found']

    def test_empty(self):
        assert TDAmeritradeParser().parse("").errors == ['No headers found in CSV']

    def test_validate(self):
        assert TDAmeritradeParser().validate(self.CONTENT).valid is True
        invalid = TDAmeritradeParser().validate("foo,bar\n1,2")
        assert invalid.valid is False
        assert invalid.errors[0].startswith("Missing expected columns: date")


class TestInteractiveBrokersParser:

    HEADER = ("Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,Date/Time,Quantity,"
              "T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code")

    def _statement(self, *data_lines, extra=""):
        return "\n".join([
            "Statement,Header,Field Name,Field Value",
            "Statement,Data,BrokerName,Interactive Brokers",
            self.HEADER,
            *data_lines,
            "Trades,SubTotal,,Stocks,USD,AAPL,,100,,,-15025,-1,15026,0,0,",
            "Trades,Total,,,,,,,,,,,,,,",
            extra,
        ])

    def test_parse_option_symbol(self):
        details = parse_option_symbol("AAPL 230120C00150000")
        assert details.option_type is OptionType.CALL
        assert details.strike_price == 150.0
        assert details.expiration_date == "2023-01-20"
        assert parse_option_symbol("AAPL") is None

    def test_parses_stock_and_sell_side(self):
        content = self._statement(
            'Trades,Data,Order,Stocks,USD,AAPL,"2024-01-15, 10:30:00",100,150.25,151,-15025,-1,15026,0,75,O',
            'Trades,Data,Order,Stocks,USD,MSFT,"2024-01-16, 11:00:00",-50,400,399,20000,-1.5,-19000,1000,50,C',
        )
        result = InteractiveBrokersParser().parse(content)

        assert result.success is True
        assert result.total_rows == 2
        buy, sell = result.trades
        assert buy.side is OrderSide.BUY
        assert buy.entry_date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert buy.fee == pytest.approx(1.0)
        assert buy.fee_currency == 'USD'
        assert sell.side is OrderSide.SELL
        assert sell.quantity == 50
        assert sell.realized_pnl == pytest.approx(1000)

    def test_option_and_forex_rows(self):
        content = self._statement(
            'Trades,Data,Order,Equity and Index Options,USD,AAPL 230120C00150000,"2023-01-10, 09:45:00",'
            '1,2.5,2.6,-250,-0.7,250.7,0,10,O',
            'Trades,Data,Order,Forex,USD,EUR.USD,"2024-01-15, 10:30:00",10000,1.09,1.091,-10900,-2,0,0,10,',
        )
        option, fx = InteractiveBrokersParser().parse(content).trades

        assert option.symbol == 'AAPL'
        assert option.asset_class is AssetClass.OPTIONS
        assert option.option_type is OptionType.CALL
        assert option.strike_price == 150.0
        assert option.expiration_date == "2023-01-20"
        assert fx.symbol == 'EURUSD'
        assert fx.asset_class is AssetClass.FOREX

    def test_sections_end_at_other_header(self):
        content = "\n".join([
            self.HEADER,
            'Trades,Data,Order,Stocks,USD,AAPL,"2024-01-15, 10:30:00",100,150,151,-15000,-1,15001,0,100,O',
            "Dividends,Header,Currency,Date,Description,Amount",
            "Dividends,Data,USD,2024-01-20,AAPL Cash Dividend,24",
            self.HEADER,
            'Trades,Data,Order,Stocks,USD,NVDA,"2024-02-01, 10:30:00",10,500,501,-5000,-1,5001,0,10,O',
        ])
        sections = extract_trades_sections(content)

        assert len(sections) == 2
        assert sections[0][0][:3] == ['DataDiscriminator', 'Asset Category', 'Currency']
        assert [row[3] for _, rows in sections for row in rows] == ['AAPL', 'NVDA']

    def test_plain_csv_without_sections(self):
        content = "Symbol,Date/Time,Quantity,T. Price,Asset Category\nAAPL,2024-01-15,10,150,Stocks\n"
        result = InteractiveBrokersParser().parse(content)
        assert result.parsed_rows == 1
        assert result.trades[0].asset_class is AssetClass.STOCKS

    def test_validate_without_trades(self):
        assert InteractiveBrokersParser().validate("foo,bar\n1,2").valid is False


class TestMetaTraderParser:

    HEADER = "Ticket\tOpen Time\tType\tVolume\tSymbol\tOpen Price\tS/L\tT/P\tClose Time\tClose Price\tCommission\tSwap\tProfit"

    def test_helpers(self):
        assert normalize_symbol('EURUSD.m') == 'EUR/USD'
        assert normalize_symbol('US30') == 'US30'
        assert lots_to_units(0.1, 'EURUSD.ecn') == pytest.approx(10000)
        assert lots_to_units(1, 'XAUUSD') == 100
        assert lots_to_units(2, 'XAGUSD') == 10000
        assert lots_to_units(3, 'US30') == 3
        assert parse_mt_date('2024.01.15 10:30:00') == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert parse_mt_date('2024.01.15') == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_parses_tab_export(self):
        content = "\n".join([
            self.HEADER,
            "1001\t2024.01.15 10:30:00\tbuy\t0.10\tEURUSD.m\t1.09500\t1.09000\t1.10000\t"
            "2024.01.15 14:00:00\t1.09800\t-0.70\t-0.30\t30.00",
            "1002\t2024.01.15 09:00:00\tbalance\t\t\t\t\t\t\t\t\t\t1000.00",
            "1003\t2024.01.16 08:00:00\tsell\t0.50\tXAUUSD\t2050.00\t0\t0\t2024.01.16 12:00:00\t2040.00\t-2.50\t0\t500.00",
        ])
        result = MetaTraderParser().parse(content)

        assert result.success is True
        assert result.total_rows == 2
        eurusd, gold = result.trades
        assert eurusd.symbol == 'EUR/USD'
        assert eurusd.asset_class is AssetClass.FOREX
        assert eurusd.quantity == pytest.approx(10000)
        assert eurusd.exit_price == pytest.approx(1.098)
        assert eurusd.fee == pytest.approx(1.0)
        assert eurusd.fee_currency == 'USD'
        assert eurusd.realized_pnl == pytest.approx(30.0)
        assert eurusd.external_id == '1001'
        assert gold.side is OrderSide.SELL
        assert gold.quantity == pytest.approx(50)

    def test_semicolon_export_with_magic(self):
        content = (
            "Ticket;Open Time;Type;Volume;Symbol;Open Price;Close Price;Profit;Magic;Comment\n"
            "7;2024.03.01 10:00;buy;1;GBPUSD;1.26;1.27;1000;42;grid\n"
        )
        trade = MetaTraderParser().parse(content).trades[0]
        assert trade.notes == "Magic: 42 | grid"
        assert trade.quantity == pytest.approx(100000)

    def test_invalid_type_skipped(self):
        content = "\n".join([
            self.HEADER,
            "1\t2024.01.15 10:30:00\tbuy limit\t0.1\tEURUSD\t1.09\t0\t0\t\t\t0\t0\t0",
        ])
        result = MetaTraderParser().parse(content)
        assert result.success is False
        assert result.warnings == ['Row 2: Invalid type "buy limit", skipping']
