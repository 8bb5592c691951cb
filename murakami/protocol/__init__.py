"""Encoders, decoders, frame helpers and message types for the stream store wire protocol."""