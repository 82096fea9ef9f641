"""UDP datagram encoding, decoding and checksums."""