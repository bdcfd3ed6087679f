type BlockNumber = int
type ChainId = int
type Timestamp = int
