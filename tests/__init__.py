"""QCFlow test suite: unit tests run against in-memory stores; integration tests drive the HTTP API"""
