"""Anonymous voting service: membership accumulator, invitation tokens and ballots."""
