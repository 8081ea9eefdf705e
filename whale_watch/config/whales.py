"""
默认关注地址列表

交易所热钱包、跨链桥、知名大户等，地址均为小写。
运行时通过配置注入（可被 WHALE_ADDRESSES 或 whales_file 覆盖），
过滤器本身不持有任何地址。
"""

from typing import Dict


DEFAULT_WHALE_ADDRESSES: Dict[str, str] = {
    "0x00000000219ab540356cbb839cbe05303d7705fa": "Beacon Deposit Contract",
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": "Wrapped Ether",
    "0xbe0eb53f46cd790cd13851d5eff43d12404d33e8": "Binance 7",
    "0x40b38765696e3d5d8d9d834d8aad4bb6e418e489": "Robinhood",
    "0x49048044d57e1c92a77f79988d21fa8faf74e97e": "Base: Base Portal",
    "0x0e58e8993100f1cbe45376c410f97f4893d9bfcd": "Upbit 41",
    "0x8315177ab297ba92a06054ce80a67ed4dbd7ed3a": "Arbitrum: Bridge",
    "0xf977814e90da44bfa03b6295a0616a897441acec": "Binance: Hot Wallet 20",
    "0x47ac0fb4f2d84898e4d9e7b4dab3c24507a6d503": "Binance: Binance-Peg Tokens",
    "0xe92d1a43df510f82c66382592a047d288f85226f": "Bitfinex 19",
    "0x61edcdf5bb737adffe5043706e7c5bb1f1a56eea": "Gemini 3",
    "0x3bfc20f0b9afcace800d73d2191166ff16540258": "Polkadot: MultiSig",
    "0xd3a22590f8243f8e83ac230d1842c9af0404c4a1": "Ceffu: Custody Hot Wallet 2",
    "0x8103683202aa8da10536036edef04cdd865c225e": "Bitfinex 20",
    "0x109be9d7d5f64c8c391ced3a8f69bdef20fcaea9": "Kraken 74",
    "0x539c92186f7c6cc4cbf443f26ef84c595babbca1": "OKX 73",
    "0xbfbbfaccd1126a11b8f84c60b09859f80f3bd10f": "OKX 93",
    "0x868dab0b8e21ec0a48b726a1ccf25826c78c6d7f": "OKX 76",
    "0xc61b9bb3a7a0767e3179713f3a5c7a9aedce193c": "Bitfinex: MultiSig 2",
    "0x5a52e96bacdabb82fd05763e25335261b270efcb": "Binance 28",
    "0x267be1c1d684f78cb4f6a176c4911b741e4ffdc0": "Kraken 4",
    "0xde0b295669a9fd93d5f28d9ec85e40f4cb697bae": "EthDev",
    "0xd19d4b5d358258f05d7b411e21a1460d11b0876f": "Linea: L1 Message Service",
    "0x742d35cc6634c0532925a3b844bc454e4438f44e": "Bitfinex 2",
    "0x73af3bcf944a6559933396c1577b257e2054d935": "Robinhood 6",
    "0xa023f08c70a23abc7edfc5b6b5e171d78dfc947e": "Crypto.com 22",
    "0xa160cdab225685da1d56aa342ad8841c3b53f291": "Tornado.Cash: 100 ETH",
    "0x8484ef722627bf18ca5ae6bcf031c23e6e922b30": "Polygon (Matic): Ether Bridge",
    "0x5a710a3cdf2af218740384c52a10852d8870626a": "Bitfinex 15",
    "0x4fdd5eb2fb260149a3903859043e962ab89d8ed4": "Bitfinex 5",
    "0x28140cb1ac771d4add91ee23788e50249c10263d": "Bitfinex 16",
    "0xc56fefd1028b0534bfadcdb580d3519b5586246e": "Bitfinex 11",
    "0x3727cfcbd85390bb11b3ff421878123adb866be8": "Bitbank 2",
    "0xc882b111a75c0c657fc507c04fbfcd2cc984f071": "Gate.io 5",
    "0xdf9eb223bafbe5c5271415c75aecd68c21fe3d7f": "Liquity: Active Pool",
    "0xc54cb22944f2be476e02decfcd7e3e7d3e15a8fb": "Mantle: Proxy",
    "0x59708733fbbf64378d9293ec56b977c011a08fd2": "Bitget 23",
    "0x98adef6f2ac8572ec48965509d69a8dd5e8bba9d": "Binance 93",
    "0xb0a27099582833c0cb8c7a0565759ff145113d64": "OKX 153",
    "0x889edc2edab5f40e902b864ad4d7ade8e412f9b1": "Lido: Withdrawal Queue",
    "0xd69b0089d9ca950640f5dc9931a41a5965f00303": "Gemini 7",
    "0x3bc643a841915a267ee067b580bd802a66001c1d": "BTC Markets 1",
    "0xb10edd6fa6067dba8d4326f1c8f0d1c791594f13": "Bitpanda 5",
    "0x1e2fcfd26d36183f1a5d90f0e6296915b02bcb40": "Coinone 2",
    "0xd6216fc19db775df9774a6e33526131da7d19a2c": "KuCoin 6",
    "0xad10a0ec7a7fdd54b9d13fa8e2ee1d5f4e94627a": "VanEck: ETHV Ethereum ETF",
    "0x56eddb7aa87536c09ccc2793473599fd21a8b17f": "Binance 17",
    "0x6e29f75b0350fd0e85ee34a21ef94767b0186996": "Stake.com 3",
}
