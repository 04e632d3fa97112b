"""Storage for topic logs and consumer group offsets: interfaces, memory, file and backends."""