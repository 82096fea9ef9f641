"""TCP segments and options, state machine, buffers, retransmission queue, connections and Fast Open."""