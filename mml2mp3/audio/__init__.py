"""Audio stages.

Both engines are shell-outs to system tools, resolved lazily through
`EngineRuntime`:
- FluidSynth renders MIDI with a SoundFont (SF2) to 16-bit stereo PCM
- ffmpeg/libmp3lame encodes that PCM to MP3 at 192 kbps
"""
