"""Multicall (v2) aggregation functions.

Both take a list of (target, calldata) pairs. `aggregate` reverts when any
call reverts; `tryAggregate(false, ...)` reports a success flag per call.
"""

from nftledger.abi.codec import FunctionCodec

# function aggregate((address,bytes)[] calls) returns (uint256 blockNumber, bytes[] returnData)
AGGREGATE = FunctionCodec("aggregate", ("(address,bytes)[]",), ("uint256", "bytes[]"))

# function tryAggregate(bool requireSuccess, (address,bytes)[] calls)
#     returns ((bool success, bytes returnData)[])
TRY_AGGREGATE = FunctionCodec("tryAggregate", ("bool", "(address,bytes)[]"), ("(bool,bytes)[]",))
