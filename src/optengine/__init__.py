"""
Options Position Lifecycle Engine

Selects and sizes option entries, monitors open positions and resolves
exit conditions into closing instructions.

Example:
    ```python
    from optengine.exits import ExitManager
    from optengine.monitoring import PositionMonitor
    from optengine.workflows import EntryPlanner, build_position

    result = EntryPlanner().plan_single(chain, market_condition, OptionKind.CALL, 100_000)
    if result.ok and result.plan.should_enter:
        position = build_position(result.plan, fill_price, filled, order_id)
        monitor = PositionMonitor(quote_source, exit_manager=ExitManager())
        await monitor.start_monitoring(position)
    ```
"""

__version__ = "0.1.0"
